import tempfile
import threading
import unittest
from pathlib import Path

from s3_cli.aliases import AliasConfig, AliasStorage
from s3_cli.controller import S3CliController
from s3_cli.errors import AliasNotFoundError, InvalidPathError, PatternCompileError, TransportError
from s3_cli.models import ObjectPage, ObjectRecord
from s3_cli.settings import MAX_PARTS, MIN_PART_SIZE, ClientSettings


class FakeKeychain:
    def get_secret(self, alias):
        return ""

    def set_secret(self, alias, secret_key):
        pass

    def delete_secret(self, alias):
        pass


class FakeStore:
    def __init__(self, **kwargs):
        self.options = kwargs
        self.pages = []
        self.list_calls = []
        self.metadata_calls = []
        self.deleted = []
        self.failed_deletes = []
        self.put_calls = []
        self.parts = []
        self.completed = []
        self.buckets_created = []
        self.buckets_deleted = []
        self.list_buckets_error = None
        self.lock = threading.Lock()

    def list_buckets(self):
        if self.list_buckets_error is not None:
            raise self.list_buckets_error
        return [ObjectRecord(key="bucket", is_directory=True)]

    def list_objects(self, bucket, prefix, delimiter, continuation_token):
        self.list_calls.append((bucket, prefix, delimiter, continuation_token))
        return self.pages[len(self.list_calls) - 1]

    def head_object_metadata(self, bucket, key):
        self.metadata_calls.append(key)
        return {"Color": "blue" if key.endswith(".jpg") else "red"}

    def get_object_tags(self, bucket, key):
        return {}

    def delete_objects(self, bucket, keys):
        self.deleted.append((bucket, list(keys)))
        return list(self.failed_deletes)

    def put_object(self, bucket, key, body, checksum=None):
        self.put_calls.append((bucket, key, body, checksum))
        return "etag"

    def create_multipart_upload(self, bucket, key, checksum_algorithm=None):
        return "up-1"

    def upload_part(self, bucket, key, upload_id, part_number, body, checksum=None):
        with self.lock:
            self.parts.append((part_number, len(body)))
        return f"e{part_number}"

    def complete_multipart_upload(self, bucket, key, upload_id, parts, checksum_algorithm=None):
        self.completed.append((bucket, key, [part.part_number for part in parts]))

    def abort_multipart_upload(self, bucket, key, upload_id):
        pass

    def create_bucket(self, bucket, region=None, ignore_existing=False):
        self.buckets_created.append((bucket, region, ignore_existing))
        return True

    def delete_bucket(self, bucket):
        self.buckets_deleted.append(bucket)


class StoreFactory:
    def __init__(self):
        self.stores = []

    def __call__(self, **kwargs):
        store = FakeStore(**kwargs)
        self.stores.append(store)
        return store


class S3CliControllerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)
        self.aliases = AliasStorage(self.tmp / "config", keychain=FakeKeychain(), environ={})
        self.aliases.set("play", AliasConfig(url="https://play.example.com", access_key="ak", secret_key="sk"))
        self.factory = StoreFactory()
        self.controller = S3CliController(
            aliases=self.aliases,
            settings=ClientSettings(region="eu-central-1"),
            store_factory=self.factory,
        )

    def test_store_is_built_from_alias_and_reused(self):
        first = self.controller.store_for("play")
        second = self.controller.store_for("play")

        self.assertIs(first, second)
        self.assertEqual(
            {
                "endpoint_url": "https://play.example.com",
                "access_key": "ak",
                "secret_key": "sk",
                "session_token": None,
                "region": "eu-central-1",
            },
            first.options,
        )

    def test_unknown_alias(self):
        with self.assertRaises(AliasNotFoundError):
            self.controller.store_for("nope")

    def test_set_alias_verifies_credentials(self):
        self.controller.set_alias("new", url="https://new", access_key="a", secret_key="s")

        self.assertEqual("https://new", self.aliases.get("new").url)
        self.assertEqual(1, len(self.factory.stores))

    def test_set_alias_not_saved_when_verification_fails(self):
        def failing_factory(**kwargs):
            store = FakeStore(**kwargs)
            store.list_buckets_error = TransportError("ListBuckets failed")
            return store

        controller = S3CliController(aliases=self.aliases, store_factory=failing_factory)

        with self.assertRaises(TransportError):
            controller.set_alias("bad", url="https://bad", access_key="a", secret_key="s")
        with self.assertRaises(AliasNotFoundError):
            self.aliases.get("bad")

    def test_list_one_level(self):
        store = self.controller.store_for("play")
        store.pages = [ObjectPage(common_prefixes=["dir/"], contents=[ObjectRecord(key="file")])]

        with self.controller.list("play/bucket/") as stream:
            keys = [record.key for record in stream]

        self.assertEqual(["dir/", "file"], keys)
        self.assertEqual(("bucket", "", "/", None), store.list_calls[0])

    def test_find_lists_recursively_with_metadata(self):
        store = self.controller.store_for("play")
        store.pages = [
            ObjectPage(
                contents=[
                    ObjectRecord(key="photos/a.jpg"),
                    ObjectRecord(key="photos/b.png"),
                ]
            )
        ]
        criteria = self.controller.compile_criteria("play/bucket/photos/", metadata=["Color=blue"])

        with self.controller.find("play/bucket/photos/", criteria) as records:
            keys = [record.key for record in records]

        self.assertEqual(["photos/a.jpg"], keys)
        self.assertEqual(("bucket", "photos/", "", None), store.list_calls[0])
        self.assertEqual(["photos/a.jpg", "photos/b.png"], store.metadata_calls)

    def test_compile_criteria_fails_before_listing(self):
        with self.assertRaises(PatternCompileError):
            self.controller.compile_criteria("play/bucket", name="[oops")

        self.assertEqual([], self.factory.stores)

    def test_put_small_file_multipart(self):
        source = self.tmp / "hello.txt"
        source.write_bytes(b"hello world")

        destination, size = self.controller.put(str(source), "play/bucket/")

        self.assertEqual("bucket", destination.bucket)
        self.assertEqual("hello.txt", destination.prefix)
        self.assertEqual(11, size)
        store = self.factory.stores[0]
        self.assertEqual([("bucket", "hello.txt", [1])], store.completed)

    def test_put_without_multipart(self):
        source = self.tmp / "data.bin"
        source.write_bytes(b"payload")

        self.controller.put(str(source), "play/bucket/key.bin", disable_multipart=True, checksum="crc32")

        bucket, key, body, checksum = self.factory.stores[0].put_calls[0]
        self.assertEqual(("bucket", "key.bin", b"payload"), (bucket, key, body))
        self.assertEqual("CRC32", checksum[0])

    def test_put_empty_file_uses_single_request(self):
        source = self.tmp / "empty"
        source.write_bytes(b"")

        self.controller.put(str(source), "play/bucket/empty")

        self.assertEqual(1, len(self.factory.stores[0].put_calls))

    def test_put_missing_source(self):
        with self.assertRaises(InvalidPathError):
            self.controller.put(str(self.tmp / "missing.txt"), "play/bucket/")

    def test_chunk_size_limits(self):
        self.assertEqual(MIN_PART_SIZE, S3CliController._chunk_size_for(100, 1))
        huge = MIN_PART_SIZE * MAX_PARTS * 2
        self.assertEqual(MIN_PART_SIZE * 2, S3CliController._chunk_size_for(huge, MIN_PART_SIZE))

    def test_make_and_remove_bucket(self):
        self.assertTrue(self.controller.make_bucket("play/new", ignore_existing=True))
        self.controller.remove_bucket("play/new")

        store = self.factory.stores[0]
        self.assertEqual([("new", "eu-central-1", True)], store.buckets_created)
        self.assertEqual(["new"], store.buckets_deleted)

    def test_make_bucket_requires_bucket(self):
        with self.assertRaises(InvalidPathError):
            self.controller.make_bucket("play")

    def test_remove_single_object(self):
        removed = self.controller.remove("play/bucket/file.txt")

        self.assertEqual(["file.txt"], removed)
        self.assertEqual([("bucket", ["file.txt"])], self.factory.stores[0].deleted)

    def test_recursive_remove_requires_force(self):
        with self.assertRaises(InvalidPathError):
            self.controller.remove("play/bucket/dir/", recursive=True)

    def test_recursive_remove_deletes_listed_objects(self):
        store = self.controller.store_for("play")
        store.pages = [
            ObjectPage(contents=[ObjectRecord(key="dir/a")], next_continuation_token="t"),
            ObjectPage(contents=[ObjectRecord(key="dir/b")]),
        ]

        removed = self.controller.remove("play/bucket/dir/", recursive=True, force=True)

        self.assertEqual(["dir/a", "dir/b"], removed)
        self.assertEqual([("bucket", ["dir/a", "dir/b"])], store.deleted)

    def test_failed_deletes_are_reported(self):
        store = self.controller.store_for("play")
        store.failed_deletes = ["file.txt"]

        with self.assertRaises(TransportError):
            self.controller.remove("play/bucket/file.txt")


if __name__ == "__main__":
    unittest.main()
