from __future__ import annotations
"""Paginated listing of buckets, objects and object versions.

A listing runs in one producer thread that walks the store's pages and
pushes :class:`ObjectRecord` items into a bounded queue. The consumer iterates
a :class:`ListingStream`; when the queue is full the producer waits, so memory
stays bounded however large the bucket is.
"""
from dataclasses import replace
import logging
import queue
import threading
from typing import Callable, Iterator, Optional

from .errors import TransportError
from .models import ListingRequest, ObjectRecord
from .services import ObjectStoreAPI

LOGGER = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100
ARCHIVAL_STORAGE_CLASSES = frozenset({"GLACIER"})
NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

_END = object()

EmitFn = Callable[[ObjectRecord], bool]


class ListingStream:
    """Finite, single-pass iterator over the records of one listing."""

    def __init__(
        self,
        records: "queue.Queue[object]",
        cancel_event: threading.Event,
        producer: threading.Thread,
        poll_interval: float,
    ):
        self._records = records
        self._cancel = cancel_event
        self._producer = producer
        self._poll_interval = poll_interval
        self._exhausted = False

    def __iter__(self) -> Iterator[ObjectRecord]:
        while not self._exhausted:
            try:
                item = self._records.get(timeout=self._poll_interval)
            except queue.Empty:
                if not self._producer.is_alive() and self._records.empty():
                    self._exhausted = True
                continue
            if item is _END:
                self._exhausted = True
                break
            yield item  # type: ignore[misc]

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the producer and release its thread."""

        self._cancel.set()
        self._exhausted = True
        while True:
            try:
                self._records.get_nowait()
            except queue.Empty:
                break
        self._producer.join(timeout)

    def __enter__(self) -> "ListingStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RemoteLister:
    """Produces listing streams from an :class:`ObjectStoreAPI`."""

    def __init__(
        self,
        store: ObjectStoreAPI,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        poll_interval: float = 0.1,
    ):
        self._store = store
        self._queue_size = max(int(queue_size), 1)
        self._poll_interval = poll_interval

    def list(self, request: ListingRequest, cancel_event: threading.Event | None = None) -> ListingStream:
        records: "queue.Queue[object]" = queue.Queue(maxsize=self._queue_size)
        cancel = cancel_event or threading.Event()
        producer = threading.Thread(
            target=self._produce,
            args=(request, records, cancel),
            name=f"lister-{request.bucket or 'buckets'}",
            daemon=True,
        )
        stream = ListingStream(records, cancel, producer, self._poll_interval)
        producer.start()
        return stream

    def _produce(self, request: ListingRequest, records: "queue.Queue[object]", cancel: threading.Event) -> None:
        def emit(record: ObjectRecord) -> bool:
            while not cancel.is_set():
                try:
                    records.put(record, timeout=self._poll_interval)
                    return True
                except queue.Full:
                    continue
            return False

        try:
            if not request.bucket:
                self._list_buckets(emit)
            elif request.versions:
                self._list_versions(request, emit, cancel)
            else:
                self._list_objects(request, emit, cancel)
        except TransportError as exc:
            LOGGER.error("Error listing objects: %s", exc)
            emit(ObjectRecord(key="", error=str(exc)))
        except Exception as exc:
            LOGGER.exception("Unexpected error listing objects")
            emit(ObjectRecord(key="", error=str(exc) or repr(exc)))
        finally:
            try:
                records.put_nowait(_END)
            except queue.Full:
                LOGGER.debug("Listing queue full at shutdown; consumer will notice the producer exit")

    def _list_buckets(self, emit: EmitFn) -> None:
        buckets = self._store.list_buckets()
        LOGGER.debug("Listed %d bucket(s)", len(buckets))
        for bucket in buckets:
            if not emit(bucket):
                return

    def _list_objects(self, request: ListingRequest, emit: EmitFn, cancel: threading.Event) -> None:
        pages = 0
        while not cancel.is_set():
            page = self._store.list_objects(
                request.bucket,
                request.prefix,
                request.delimiter,
                request.continuation_token,
            )
            pages += 1
            LOGGER.debug(
                "Page %d of '%s': %d prefix(es), %d object(s)",
                pages,
                request.bucket,
                len(page.common_prefixes),
                len(page.contents),
            )
            for prefix in page.common_prefixes:
                if not emit(ObjectRecord(key=prefix, is_directory=True)):
                    return
            for record in page.contents:
                if record.storage_class in ARCHIVAL_STORAGE_CLASSES:
                    continue
                if request.with_metadata:
                    record = self._with_metadata(request.bucket, record)
                    if record is None:
                        continue
                if not emit(record):
                    return
            request.continuation_token = page.next_continuation_token
            if not request.continuation_token:
                return
        LOGGER.debug("Listing of '%s' cancelled after %d page(s)", request.bucket, pages)

    def _list_versions(self, request: ListingRequest, emit: EmitFn, cancel: threading.Event) -> None:
        key_marker: Optional[str] = None
        version_id_marker: Optional[str] = None
        group: list[ObjectRecord] = []
        # Prefixes wait for the version group that was open when they arrived.
        pending_prefixes: list[str] = []

        def flush() -> bool:
            count = len(group)
            for index, record in enumerate(group):
                if record.storage_class in ARCHIVAL_STORAGE_CLASSES:
                    continue
                numbered = replace(record, version_index=index, version_ordinal=count - index)
                if request.with_metadata and not numbered.is_delete_marker:
                    numbered = self._with_metadata(request.bucket, numbered)
                    if numbered is None:
                        continue
                if not emit(numbered):
                    return False
            group.clear()
            for prefix in pending_prefixes:
                if not emit(ObjectRecord(key=prefix, is_directory=True)):
                    return False
            pending_prefixes.clear()
            return True

        while not cancel.is_set():
            page = self._store.list_object_versions(
                request.bucket,
                request.prefix,
                request.delimiter,
                key_marker,
                version_id_marker,
            )
            pending_prefixes.extend(page.common_prefixes)
            continues = bool(group) and bool(page.contents) and page.contents[0].key == group[0].key
            if not continues and not flush():
                return
            for record in page.contents:
                if group and group[0].key != record.key and not flush():
                    return
                group.append(record)
            key_marker = page.next_key_marker
            version_id_marker = page.next_version_id_marker
            if not key_marker:
                flush()
                return

    def _with_metadata(self, bucket: str, record: ObjectRecord) -> Optional[ObjectRecord]:
        """Attach metadata and tags; None when the object vanished meanwhile."""

        try:
            metadata = self._store.head_object_metadata(bucket, record.key)
            tags = self._store.get_object_tags(bucket, record.key)
        except TransportError as exc:
            if exc.code not in NOT_FOUND_CODES:
                raise
            LOGGER.warning("Skipping '%s/%s': object no longer exists", bucket, record.key)
            return None
        return replace(record, metadata=metadata, tags=tags)
