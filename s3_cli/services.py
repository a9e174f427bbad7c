from __future__ import annotations
"""Object store access over boto3."""
from contextlib import contextmanager
from datetime import datetime
import logging
from typing import Callable, Iterator, Optional, Protocol, Sequence

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import TransportError
from .models import ObjectPage, ObjectRecord, PartResult, canonical_header_key, utc_now

LOGGER = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DELETE_BATCH_SIZE = 1000
BUCKET_EXISTS_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}

# Part field names used by CompleteMultipartUpload for each checksum algorithm.
CHECKSUM_PART_FIELDS = {
    "CRC32": "ChecksumCRC32",
    "SHA1": "ChecksumSHA1",
    "SHA256": "ChecksumSHA256",
}

# HeadObject response fields reported under their HTTP header names.
SYSTEM_METADATA_HEADERS = {
    "ContentType": "Content-Type",
    "ContentEncoding": "Content-Encoding",
    "ContentLanguage": "Content-Language",
    "ContentDisposition": "Content-Disposition",
    "CacheControl": "Cache-Control",
    "Expires": "Expires",
}
USER_METADATA_HEADER_PREFIX = "x-amz-meta-"


class ObjectStoreAPI(Protocol):
    """Authenticated calls the listing and upload pipelines depend on."""

    def list_objects(
        self, bucket: str, prefix: str, delimiter: str, continuation_token: str | None
    ) -> ObjectPage: ...

    def list_object_versions(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        key_marker: str | None,
        version_id_marker: str | None,
    ) -> ObjectPage: ...

    def list_buckets(self) -> list[ObjectRecord]: ...

    def head_object_metadata(self, bucket: str, key: str) -> dict[str, str]: ...

    def get_object_tags(self, bucket: str, key: str) -> dict[str, str]: ...

    def create_multipart_upload(self, bucket: str, key: str, checksum_algorithm: str | None = None) -> str: ...

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
        checksum: tuple[str, str] | None = None,
    ) -> str: ...

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[PartResult], checksum_algorithm: str | None = None
    ) -> None: ...

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None: ...


@contextmanager
def _transport_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except ClientError as exc:
        LOGGER.debug("%s failed: %s", operation, exc)
        code = exc.response.get("Error", {}).get("Code")
        raise TransportError(f"{operation} failed: {exc}", code=code) from exc
    except BotoCoreError as exc:
        LOGGER.debug("%s failed: %s", operation, exc)
        raise TransportError(f"{operation} failed: {exc}") from exc


def _metadata_from_head(response: dict) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for field, header in SYSTEM_METADATA_HEADERS.items():
        value = response.get(field)
        if value:
            metadata[header] = str(value)

    headers = (response.get("ResponseMetadata") or {}).get("HTTPHeaders") or {}
    user_metadata = {
        name[len(USER_METADATA_HEADER_PREFIX):]: value
        for name, value in headers.items()
        if name.lower().startswith(USER_METADATA_HEADER_PREFIX)
    }
    if not user_metadata:
        user_metadata = response.get("Metadata") or {}
    for name, value in user_metadata.items():
        metadata[canonical_header_key(f"{USER_METADATA_HEADER_PREFIX}{name}")] = value
    return metadata


def _record_from_content(content: dict) -> ObjectRecord:
    return ObjectRecord(
        key=content.get("Key", ""),
        size=int(content.get("Size") or 0),
        last_modified=content.get("LastModified") or utc_now(),
        etag=(content.get("ETag") or "").strip('"'),
        storage_class=content.get("StorageClass"),
    )


class S3ObjectStore:
    """Implements :class:`ObjectStoreAPI` with a boto3 ``s3`` client."""

    def __init__(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        session_token: str | None = None,
        region: str = DEFAULT_REGION,
        client_factory: Callable[..., object] | None = None,
    ):
        self._client_factory = client_factory or boto3.client
        self.endpoint_url = endpoint_url
        self._client = self._create_client(endpoint_url, access_key, secret_key, session_token, region)

    def _create_client(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        session_token: str | None,
        region: str,
    ):
        config = Config(signature_version="s3v4")
        return self._client_factory(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            aws_session_token=session_token or None,
            region_name=region or DEFAULT_REGION,
            config=config,
        )

    def list_buckets(self) -> list[ObjectRecord]:
        with _transport_errors("ListBuckets"):
            response = self._client.list_buckets()
        return [
            ObjectRecord(
                key=bucket["Name"],
                last_modified=bucket.get("CreationDate") or utc_now(),
                is_directory=True,
            )
            for bucket in response.get("Buckets", [])
        ]

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "/",
        continuation_token: str | None = None,
    ) -> ObjectPage:
        params = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        if delimiter:
            params["Delimiter"] = delimiter
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        with _transport_errors(f"ListObjectsV2 on '{bucket}'"):
            response = self._client.list_objects_v2(**params)
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ObjectPage(
            common_prefixes=[common["Prefix"] for common in response.get("CommonPrefixes", [])],
            contents=[_record_from_content(obj) for obj in response.get("Contents", [])],
            next_continuation_token=next_token,
        )

    def list_object_versions(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "/",
        key_marker: str | None = None,
        version_id_marker: str | None = None,
    ) -> ObjectPage:
        params = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        if delimiter:
            params["Delimiter"] = delimiter
        if key_marker:
            params["KeyMarker"] = key_marker
        if version_id_marker:
            params["VersionIdMarker"] = version_id_marker

        with _transport_errors(f"ListObjectVersions on '{bucket}'"):
            response = self._client.list_object_versions(**params)

        entries: list[tuple[datetime, ObjectRecord]] = []
        for version in response.get("Versions", []):
            record = _record_from_content(version)
            entries.append((record.last_modified, self._versioned(record, version, False)))
        for marker in response.get("DeleteMarkers", []):
            record = ObjectRecord(
                key=marker.get("Key", ""),
                last_modified=marker.get("LastModified") or utc_now(),
            )
            entries.append((record.last_modified, self._versioned(record, marker, True)))
        # Versions and delete markers arrive in separate arrays; merge them back
        # into key order, newest first within a key.
        entries.sort(key=lambda item: item[0], reverse=True)
        entries.sort(key=lambda item: item[1].key)

        truncated = response.get("IsTruncated", False)
        return ObjectPage(
            common_prefixes=[common["Prefix"] for common in response.get("CommonPrefixes", [])],
            contents=[record for _, record in entries],
            next_key_marker=response.get("NextKeyMarker") if truncated else None,
            next_version_id_marker=response.get("NextVersionIdMarker") if truncated else None,
        )

    @staticmethod
    def _versioned(record: ObjectRecord, raw: dict, delete_marker: bool) -> ObjectRecord:
        return ObjectRecord(
            key=record.key,
            size=record.size,
            last_modified=record.last_modified,
            etag=record.etag,
            storage_class=record.storage_class,
            version_id=raw.get("VersionId"),
            is_delete_marker=delete_marker,
        )

    def head_object_metadata(self, bucket: str, key: str) -> dict[str, str]:
        """Header-style metadata of ``key``.

        System headers keep their HTTP names (``Content-Type``); user metadata
        is keyed ``X-Amz-Meta-<Name>``.
        """

        with _transport_errors(f"HeadObject on '{bucket}/{key}'"):
            response = self._client.head_object(Bucket=bucket, Key=key)
        return _metadata_from_head(response)

    def get_object_tags(self, bucket: str, key: str) -> dict[str, str]:
        with _transport_errors(f"GetObjectTagging on '{bucket}/{key}'"):
            response = self._client.get_object_tagging(Bucket=bucket, Key=key)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    def create_multipart_upload(self, bucket: str, key: str, checksum_algorithm: str | None = None) -> str:
        params = {"Bucket": bucket, "Key": key}
        if checksum_algorithm in CHECKSUM_PART_FIELDS:
            params["ChecksumAlgorithm"] = checksum_algorithm
        with _transport_errors(f"CreateMultipartUpload on '{bucket}/{key}'"):
            response = self._client.create_multipart_upload(**params)
        upload_id = response.get("UploadId")
        if not upload_id:
            raise TransportError(f"CreateMultipartUpload on '{bucket}/{key}' returned no upload id")
        return upload_id

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
        checksum: tuple[str, str] | None = None,
    ) -> str:
        params = {
            "Bucket": bucket,
            "Key": key,
            "UploadId": upload_id,
            "PartNumber": part_number,
            "Body": body,
        }
        params.update(self._checksum_params(checksum))
        with _transport_errors(f"UploadPart {part_number} of '{bucket}/{key}'"):
            response = self._client.upload_part(**params)
        etag = response.get("ETag")
        if not etag:
            raise TransportError(f"UploadPart {part_number} of '{bucket}/{key}' returned no ETag")
        return etag

    def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[PartResult],
        checksum_algorithm: str | None = None,
    ) -> None:
        field = CHECKSUM_PART_FIELDS.get(checksum_algorithm or "")
        completed = []
        for part in parts:
            entry = {"PartNumber": part.part_number, "ETag": part.etag}
            if field and part.checksum:
                entry[field] = part.checksum
            completed.append(entry)
        with _transport_errors(f"CompleteMultipartUpload on '{bucket}/{key}'"):
            self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": completed},
            )

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        with _transport_errors(f"AbortMultipartUpload on '{bucket}/{key}'"):
            self._client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        checksum: tuple[str, str] | None = None,
    ) -> str:
        params = {"Bucket": bucket, "Key": key, "Body": body}
        params.update(self._checksum_params(checksum))
        with _transport_errors(f"PutObject on '{bucket}/{key}'"):
            response = self._client.put_object(**params)
        return (response.get("ETag") or "").strip('"')

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> list[str]:
        """Delete ``keys`` in batches; return the keys the store failed to delete."""

        failed: list[str] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            with _transport_errors(f"DeleteObjects on '{bucket}'"):
                response = self._client.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            for error in response.get("Errors", []):
                LOGGER.debug("Delete of '%s' failed: %s", error.get("Key"), error.get("Message"))
                failed.append(error.get("Key", ""))
        return failed

    def create_bucket(self, bucket: str, region: str | None = None, ignore_existing: bool = False) -> bool:
        """Create ``bucket``; return False when it already existed and that is allowed."""

        params = {"Bucket": bucket}
        if region and region != DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self._client.create_bucket(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if ignore_existing and code in BUCKET_EXISTS_CODES:
                LOGGER.debug("Bucket '%s' already exists (%s)", bucket, code)
                return False
            raise TransportError(f"CreateBucket '{bucket}' failed: {exc}") from exc
        except BotoCoreError as exc:
            raise TransportError(f"CreateBucket '{bucket}' failed: {exc}") from exc
        return True

    def delete_bucket(self, bucket: str) -> None:
        with _transport_errors(f"DeleteBucket '{bucket}'"):
            self._client.delete_bucket(Bucket=bucket)

    @staticmethod
    def _checksum_params(checksum: Optional[tuple[str, str]]) -> dict[str, str]:
        if not checksum:
            return {}
        algorithm, value = checksum
        if algorithm == "MD5":
            return {"ContentMD5": value}
        field = CHECKSUM_PART_FIELDS.get(algorithm)
        if not field:
            return {}
        return {"ChecksumAlgorithm": algorithm, field: value}
