from __future__ import annotations
"""Coordinates command requests with aliases, stores and pipelines."""
from contextlib import contextmanager
import logging
import math
from pathlib import Path
import threading
from typing import Callable, Iterable, Iterator

from .aliases import AliasConfig, AliasStorage
from .checksums import compute_checksum, normalize_algorithm
from .errors import EmptyInputError, InvalidPathError, TransportError
from .filters import FilterCriteria, filter_records
from .lister import ListingStream, RemoteLister
from .models import ListingRequest, ObjectRecord
from .progress import TransferProgress
from .services import S3ObjectStore
from .settings import MAX_PARTS, MIN_PART_SIZE, ClientSettings
from .ui_utils import RemotePath, generate_object_key, parse_remote_path
from .upload import ChunkedUploader

LOGGER = logging.getLogger(__name__)

StoreFactory = Callable[..., S3ObjectStore]


class S3CliController:
    """Resolves ``alias/bucket/prefix`` paths and runs operations against them."""

    def __init__(
        self,
        aliases: AliasStorage | None = None,
        settings: ClientSettings | None = None,
        store_factory: StoreFactory | None = None,
    ):
        self._aliases = aliases or AliasStorage()
        self._settings = settings or ClientSettings()
        self._store_factory = store_factory or S3ObjectStore
        self._stores: dict[str, S3ObjectStore] = {}

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def list_aliases(self, name: str | None = None) -> list[tuple[str, AliasConfig]]:
        if name:
            return [(name, self._aliases.get(name))]
        aliases = self._aliases.load()
        return [(alias, aliases[alias]) for alias in sorted(aliases)]

    def set_alias(
        self,
        alias: str,
        *,
        url: str,
        access_key: str,
        secret_key: str,
        use_keychain: bool = False,
        verify: bool = True,
    ) -> AliasConfig:
        config = AliasConfig(url=url, access_key=access_key, secret_key=secret_key)
        if verify:
            self._create_store(config).list_buckets()
            LOGGER.debug("Verified credentials for alias '%s'", alias)
        self._stores.pop(alias, None)
        return self._aliases.set(alias, config, use_keychain=use_keychain)

    def remove_alias(self, alias: str) -> None:
        self._aliases.remove(alias)
        self._stores.pop(alias, None)

    def export_alias(self, alias: str) -> str:
        return self._aliases.export(alias)

    def import_alias(self, alias: str, payload: str) -> AliasConfig:
        self._stores.pop(alias, None)
        return self._aliases.import_json(alias, payload)

    def store_for(self, alias: str) -> S3ObjectStore:
        if alias not in self._stores:
            self._stores[alias] = self._create_store(self._aliases.get(alias))
        return self._stores[alias]

    def _create_store(self, config: AliasConfig) -> S3ObjectStore:
        return self._store_factory(
            endpoint_url=config.url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            session_token=config.session_token,
            region=self._settings.region,
        )

    def list(
        self,
        path: str,
        *,
        recursive: bool = False,
        versions: bool = False,
        with_metadata: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ListingStream:
        remote = parse_remote_path(path)
        store = self.store_for(remote.alias)
        request = ListingRequest(
            bucket=remote.bucket,
            prefix=remote.prefix,
            delimiter="" if recursive else "/",
            versions=versions,
            with_metadata=with_metadata,
        )
        LOGGER.debug("Listing %s (recursive=%s, versions=%s)", remote, recursive, versions)
        lister = RemoteLister(store, queue_size=self._settings.list_queue_size)
        return lister.list(request, cancel_event)

    def compile_criteria(self, path: str, /, **options) -> FilterCriteria:
        """Compile ``find`` predicates for ``path`` without touching the network."""

        remote = parse_remote_path(path)
        return FilterCriteria.compile(target_prefix=remote.prefix, **options)

    @contextmanager
    def find(
        self,
        path: str,
        criteria: FilterCriteria,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[Iterator[ObjectRecord]]:
        with self.list(
            path,
            recursive=True,
            with_metadata=criteria.needs_metadata,
            cancel_event=cancel_event,
        ) as stream:
            yield filter_records(criteria, stream)

    def put(
        self,
        source: str,
        target: str,
        *,
        part_size: int | None = None,
        parallel: int | None = None,
        checksum: str | None = None,
        disable_multipart: bool = False,
        progress: TransferProgress | None = None,
        cancel_event: threading.Event | None = None,
    ) -> tuple[RemotePath, int]:
        """Upload a local file and return its destination and size."""

        if not source:
            raise EmptyInputError("Source path is empty")
        destination = generate_object_key(source, target)
        source_path = Path(source)
        if not source_path.is_file():
            raise InvalidPathError(f"Source '{source}' is not a file")
        size = source_path.stat().st_size
        algorithm = normalize_algorithm(checksum)
        store = self.store_for(destination.alias)

        if disable_multipart or size == 0:
            body = source_path.read_bytes()
            digest = (algorithm, compute_checksum(algorithm, body)) if algorithm else None
            store.put_object(destination.bucket, destination.prefix, body, digest)
            if progress is not None:
                progress.advance(size)
            return destination, size

        chunk_size = self._chunk_size_for(size, part_size or self._settings.part_size)
        uploader = ChunkedUploader(
            store,
            chunk_size=chunk_size,
            parallel=parallel or self._settings.parallel,
            checksum=algorithm,
            progress=progress,
            cancel_event=cancel_event,
        )
        with source_path.open("rb") as handle:
            uploader.upload(handle, size, destination.bucket, destination.prefix)
        return destination, size

    @staticmethod
    def _chunk_size_for(size: int, requested: int) -> int:
        chunk_size = max(requested, MIN_PART_SIZE)
        if math.ceil(size / chunk_size) > MAX_PARTS:
            chunk_size = math.ceil(size / MAX_PARTS)
            LOGGER.debug("Raised part size to %d bytes to stay within %d parts", chunk_size, MAX_PARTS)
        return chunk_size

    def make_bucket(self, path: str, *, region: str | None = None, ignore_existing: bool = False) -> bool:
        remote = parse_remote_path(path, require_bucket=True)
        store = self.store_for(remote.alias)
        return store.create_bucket(remote.bucket, region or self._settings.region, ignore_existing)

    def remove_bucket(self, path: str) -> None:
        remote = parse_remote_path(path, require_bucket=True)
        self.store_for(remote.alias).delete_bucket(remote.bucket)

    def remove(self, path: str, *, recursive: bool = False, force: bool = False) -> list[str]:
        """Delete one object, or everything under a prefix when ``recursive``."""

        remote = parse_remote_path(path, require_bucket=True)
        store = self.store_for(remote.alias)
        if not recursive:
            if not remote.prefix or remote.prefix.endswith("/"):
                raise InvalidPathError(f"'{path}' is not an object; use --recursive --force to remove a prefix")
            keys = [remote.prefix]
        else:
            if not force:
                raise InvalidPathError("Removing recursively requires --force")
            keys = list(self._collect_keys(path))
        failed = store.delete_objects(remote.bucket, keys) if keys else []
        if failed:
            raise TransportError(f"Unable to remove {len(failed)} object(s), first: '{failed[0]}'")
        return keys

    def _collect_keys(self, path: str) -> Iterable[str]:
        with self.list(path, recursive=True) as stream:
            for record in stream:
                if record.is_error:
                    raise TransportError(record.error or "Listing failed")
                if not record.is_directory:
                    yield record.key
