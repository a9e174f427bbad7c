import re
import unittest
from datetime import datetime, timedelta, timezone

from s3_cli.errors import PatternCompileError
from s3_cli.filters import (
    FilterCriteria,
    filter_records,
    is_newer,
    is_older,
    match_metadata_maps,
    match_tag_maps,
    matches,
    name_match,
    path_match,
    trim_target_prefix,
)
from s3_cli.models import ObjectRecord

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class CountingRegex:
    def __init__(self, result=True):
        self.calls = 0
        self.result = result

    def search(self, text):
        self.calls += 1
        return self.result


class HelperTests(unittest.TestCase):
    def test_trim_target_prefix(self):
        self.assertEqual("b/c.txt", trim_target_prefix("a/", "a/b/c.txt"))
        self.assertEqual("b/c.txt", trim_target_prefix("a", "a/b/c.txt"))
        self.assertEqual("other/c.txt", trim_target_prefix("a/", "other/c.txt"))

    def test_name_match_on_base_name(self):
        self.assertTrue(name_match("*.jpg", "photos/2024/cat.jpg"))
        self.assertFalse(name_match("*.png", "photos/2024/cat.jpg"))

    def test_name_match_on_exact_component(self):
        self.assertTrue(name_match("2024", "photos/2024/cat.jpg"))
        self.assertFalse(name_match("202", "photos/2024/cat.jpg"))

    def test_path_match_uses_full_path(self):
        self.assertTrue(path_match("photos/*/cat.jpg", "photos/2024/cat.jpg"))
        self.assertFalse(path_match("cat.jpg", "photos/2024/cat.jpg"))

    def test_age_boundaries(self):
        modified = NOW - timedelta(days=1)

        self.assertTrue(is_older(modified, timedelta(days=1), NOW))
        self.assertFalse(is_newer(modified, timedelta(days=1), NOW))
        self.assertTrue(is_newer(modified, timedelta(days=1, seconds=1), NOW))

    def test_future_timestamps_count_as_age_zero(self):
        modified = NOW + timedelta(hours=1)

        self.assertTrue(is_newer(modified, timedelta(seconds=1), NOW))
        self.assertFalse(is_older(modified, timedelta(seconds=1), NOW))

    def test_metadata_falls_back_to_prefixed_header(self):
        expected = {"Color": re.compile("^blue$")}

        self.assertTrue(match_metadata_maps(expected, {"X-Amz-Meta-Color": "blue"}))
        self.assertTrue(match_metadata_maps(expected, {"Color": "blue"}))
        self.assertFalse(match_metadata_maps(expected, {"Color": "red"}))
        self.assertFalse(match_metadata_maps(expected, {}))

    def test_metadata_keys_match_header_names_in_any_case(self):
        metadata = {"Content-Type": "text/plain", "X-Amz-Meta-Owner": "alice"}

        self.assertTrue(match_metadata_maps({"content-type": re.compile("^text/")}, metadata))
        self.assertTrue(match_metadata_maps({"owner": re.compile("alice")}, metadata))
        self.assertFalse(match_metadata_maps({"owner": None}, metadata))

    def test_empty_expectation_requires_empty_value(self):
        expected = {"Color": None}

        self.assertTrue(match_metadata_maps(expected, {}))
        self.assertTrue(match_tag_maps(expected, {"Color": ""}))
        self.assertFalse(match_tag_maps(expected, {"Color": "blue"}))

    def test_tag_values_are_nfc_normalised(self):
        expected = {"city": re.compile("^Zürich$")}

        self.assertTrue(match_tag_maps(expected, {"city": "Zu\u0308rich"}))
        self.assertFalse(match_tag_maps(expected, {"X-Amz-Meta-city": "Zürich"}))


class MatchesTests(unittest.TestCase):
    def test_no_criteria_matches_everything(self):
        self.assertTrue(matches(FilterCriteria(), ObjectRecord(key="any")))

    def test_name_filter_on_trimmed_path(self):
        criteria = FilterCriteria.compile(target_prefix="data/", name="*.csv")

        self.assertTrue(matches(criteria, ObjectRecord(key="data/2024/report.csv")))
        self.assertFalse(matches(criteria, ObjectRecord(key="data/2024/report.json")))

    def test_ignore_excludes_matching_paths(self):
        criteria = FilterCriteria.compile(ignore="tmp/*")

        self.assertFalse(matches(criteria, ObjectRecord(key="tmp/cache.bin")))
        self.assertTrue(matches(criteria, ObjectRecord(key="keep/cache.bin")))

    def test_size_bounds_are_strict(self):
        criteria = FilterCriteria.compile(larger="1KiB", smaller="4KiB")

        self.assertFalse(matches(criteria, ObjectRecord(key="a", size=1024)))
        self.assertTrue(matches(criteria, ObjectRecord(key="a", size=2048)))
        self.assertFalse(matches(criteria, ObjectRecord(key="a", size=4096)))

    def test_age_filters_use_supplied_clock(self):
        criteria = FilterCriteria.compile(older_than="1d", newer_than="7d")
        old = ObjectRecord(key="a", last_modified=NOW - timedelta(days=2))
        fresh = ObjectRecord(key="b", last_modified=NOW - timedelta(hours=2))
        ancient = ObjectRecord(key="c", last_modified=NOW - timedelta(days=30))

        self.assertTrue(matches(criteria, old, NOW))
        self.assertFalse(matches(criteria, fresh, NOW))
        self.assertFalse(matches(criteria, ancient, NOW))

    def test_evaluation_stops_at_first_failure(self):
        regex = CountingRegex()
        criteria = FilterCriteria(name=FilterCriteria.compile(name="*.csv").name, regex=regex)

        self.assertFalse(matches(criteria, ObjectRecord(key="report.json")))
        self.assertEqual(0, regex.calls)

        self.assertTrue(matches(criteria, ObjectRecord(key="report.csv")))
        self.assertEqual(1, regex.calls)

    def test_metadata_and_tags(self):
        criteria = FilterCriteria.compile(metadata=["Content-Type=^text/"], tags=["env=prod"])
        record = ObjectRecord(
            key="a.txt",
            metadata={"Content-Type": "text/plain"},
            tags={"env": "prod"},
        )

        self.assertTrue(criteria.needs_metadata)
        self.assertTrue(matches(criteria, record))
        self.assertFalse(matches(criteria, ObjectRecord(key="a.txt", metadata=record.metadata)))

    def test_compile_rejects_bad_values(self):
        with self.assertRaises(PatternCompileError):
            FilterCriteria.compile(older_than="soon")
        with self.assertRaises(PatternCompileError):
            FilterCriteria.compile(regex="[")


class FilterRecordsTests(unittest.TestCase):
    def test_error_record_passes_through(self):
        criteria = FilterCriteria.compile(name="*.csv")
        records = [
            ObjectRecord(key="a.csv"),
            ObjectRecord(key="b.txt"),
            ObjectRecord(key="", error="boom"),
        ]

        result = list(filter_records(criteria, records))

        self.assertEqual(["a.csv", ""], [record.key for record in result])
        self.assertEqual("boom", result[-1].error)


if __name__ == "__main__":
    unittest.main()
