from __future__ import annotations
"""Concurrent multipart upload of a byte stream."""
from concurrent.futures import Future, ThreadPoolExecutor, wait
import logging
import threading
from typing import BinaryIO

from .checksums import compute_checksum
from .errors import EmptyInputError, PartialUploadFailure, TransportError, UploadCancelledError
from .models import PartResult, UploadSession, UploadState
from .progress import TransferProgress
from .services import ObjectStoreAPI

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024 * 1024
DEFAULT_PARALLEL = 4


def read_chunk(source: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, retrying short reads until EOF."""

    buffer = bytearray()
    while len(buffer) < size:
        data = source.read(size - len(buffer))
        if not data:
            break
        buffer.extend(data)
    return bytes(buffer)


class ChunkedUploader:
    """Uploads a source as ordered parts of one multipart session.

    Part numbers are assigned in read order. At most ``parallel`` parts are
    in flight (and buffered) at any time. Any failure aborts the session
    before the error is raised.
    """

    def __init__(
        self,
        store: ObjectStoreAPI,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        parallel: int = DEFAULT_PARALLEL,
        checksum: str | None = None,
        progress: TransferProgress | None = None,
        cancel_event: threading.Event | None = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be greater than zero")
        if parallel <= 0:
            raise ValueError("parallel must be greater than zero")
        self._store = store
        self._chunk_size = chunk_size
        self._parallel = parallel
        self._checksum = checksum
        self._progress = progress
        self._cancel = cancel_event or threading.Event()

    def upload(self, source: BinaryIO, size: int, bucket: str, key: str) -> UploadSession:
        upload_id = self._store.create_multipart_upload(bucket, key, self._checksum)
        session = UploadSession(bucket=bucket, key=key, upload_id=upload_id, chunk_size=self._chunk_size)
        LOGGER.debug("Opened multipart upload %s for '%s/%s'", upload_id, bucket, key)
        progress = self._progress or TransferProgress(size)

        try:
            self._upload_parts(session, source, progress)
            self._commit(session)
        except (PartialUploadFailure, UploadCancelledError, EmptyInputError):
            self._abort(session)
            raise
        except Exception as exc:
            self._abort(session)
            raise PartialUploadFailure(
                f"Upload of '{bucket}/{key}' failed: {exc}",
                upload_id=upload_id,
                cause=exc,
            ) from exc
        except BaseException:
            self._abort(session)
            raise

        if size and session.bytes_read != size:
            LOGGER.warning("Uploaded %d byte(s) but source size was %d", session.bytes_read, size)
        session.state = UploadState.DONE
        LOGGER.debug("Completed '%s/%s' with %d part(s)", bucket, key, len(session.parts))
        return session

    def _upload_parts(self, session: UploadSession, source: BinaryIO, progress: TransferProgress) -> None:
        session.state = UploadState.UPLOADING
        failed = threading.Event()
        slots = threading.BoundedSemaphore(self._parallel)
        futures: list[Future] = []
        part_number = 0

        with ThreadPoolExecutor(max_workers=self._parallel, thread_name_prefix="upload-part") as executor:
            while not failed.is_set():
                if self._cancel.is_set():
                    raise UploadCancelledError(f"Upload of '{session.bucket}/{session.key}' cancelled")
                # A slot is held before reading so no more than parallel chunks are buffered.
                slots.acquire()
                if failed.is_set():
                    slots.release()
                    break
                try:
                    chunk = read_chunk(source, session.chunk_size)
                except BaseException:
                    slots.release()
                    raise
                if not chunk:
                    slots.release()
                    break
                part_number += 1
                session.bytes_read += len(chunk)
                future = executor.submit(self._upload_part, session, part_number, chunk, progress, failed)
                future.add_done_callback(lambda _: slots.release())
                futures.append(future)
            wait(futures)

        errors = [future.exception() for future in futures if future.exception() is not None]
        if errors:
            raise PartialUploadFailure(
                f"Part upload of '{session.bucket}/{session.key}' failed: {errors[0]}",
                upload_id=session.upload_id,
                cause=errors[0],
            ) from errors[0]
        if part_number == 0:
            raise EmptyInputError("Source produced no data")

        parts = sorted((future.result() for future in futures), key=lambda part: part.part_number)
        if [part.part_number for part in parts] != list(range(1, part_number + 1)):
            raise PartialUploadFailure(
                f"Collected parts of '{session.bucket}/{session.key}' are not contiguous",
                upload_id=session.upload_id,
            )
        session.parts = parts

    def _upload_part(
        self,
        session: UploadSession,
        part_number: int,
        chunk: bytes,
        progress: TransferProgress,
        failed: threading.Event,
    ) -> PartResult:
        checksum = None
        if self._checksum:
            checksum = (self._checksum, compute_checksum(self._checksum, chunk))
        try:
            etag = self._store.upload_part(
                session.bucket,
                session.key,
                session.upload_id,
                part_number,
                chunk,
                checksum,
            )
        except Exception:
            failed.set()
            LOGGER.debug("Part %d of upload %s failed", part_number, session.upload_id)
            raise
        progress.advance(len(chunk))
        return PartResult(
            part_number=part_number,
            etag=etag,
            size=len(chunk),
            checksum=checksum[1] if checksum else None,
        )

    def _commit(self, session: UploadSession) -> None:
        session.state = UploadState.COMMITTING
        self._store.complete_multipart_upload(
            session.bucket,
            session.key,
            session.upload_id,
            session.parts,
            self._checksum,
        )

    def _abort(self, session: UploadSession) -> None:
        session.state = UploadState.ABORTING
        LOGGER.debug("Aborting multipart upload %s", session.upload_id)
        try:
            self._store.abort_multipart_upload(session.bucket, session.key, session.upload_id)
        except TransportError:
            LOGGER.exception("Unable to abort multipart upload %s", session.upload_id)
        session.state = UploadState.FAILED
