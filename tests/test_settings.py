import json
import tempfile
import unittest
from pathlib import Path

from s3_cli.settings import MIN_PART_SIZE, ClientSettings, SettingsStorage


class SettingsStorageTests(unittest.TestCase):
    def test_load_returns_defaults_when_missing(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = SettingsStorage(tmp)

            settings = storage.load()

            self.assertEqual(ClientSettings(), settings)

    def test_load_sanitizes_invalid_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            payload = {
                "part_size": 1024,
                "parallel": "nope",
                "list_queue_size": -5,
                "region": 123,
            }
            path.write_text(json.dumps(payload), encoding="utf-8")
            storage = SettingsStorage(tmp)

            settings = storage.load()

            self.assertEqual(ClientSettings.part_size, settings.part_size)
            self.assertEqual(ClientSettings.parallel, settings.parallel)
            self.assertEqual(ClientSettings.list_queue_size, settings.list_queue_size)
            self.assertEqual(ClientSettings.region, settings.region)

    def test_load_keeps_valid_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            payload = {"part_size": MIN_PART_SIZE * 2, "parallel": 8, "region": "eu-west-1"}
            path.write_text(json.dumps(payload), encoding="utf-8")

            settings = SettingsStorage(tmp).load()

            self.assertEqual(MIN_PART_SIZE * 2, settings.part_size)
            self.assertEqual(8, settings.parallel)
            self.assertEqual("eu-west-1", settings.region)

    def test_unreadable_file_falls_back_to_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "settings.json").write_text("{not json", encoding="utf-8")

            self.assertEqual(ClientSettings(), SettingsStorage(tmp).load())

    def test_save_sanitizes_minimum_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = SettingsStorage(Path(tmp) / "nested")
            settings = ClientSettings(part_size=1, parallel=0, list_queue_size=0, region="us-west-2")

            storage.save(settings)

            saved = json.loads((Path(tmp) / "nested" / "settings.json").read_text(encoding="utf-8"))
            self.assertEqual(MIN_PART_SIZE, saved["part_size"])
            self.assertEqual(1, saved["parallel"])
            self.assertEqual(1, saved["list_queue_size"])
            self.assertEqual("us-west-2", saved["region"])


if __name__ == "__main__":
    unittest.main()
