import json
import unittest

import db
from tour_flags import InMemoryKeyValueStore, SQLiteKeyValueStore, TourProgress, tour_key


def test_sqlite_store_get_set_delete(temp_db):
    store = SQLiteKeyValueStore("tests")

    assert store.get("missing") is None
    store.set("alpha", "1")
    store.set("alpha", "2")
    assert store.get("alpha") == "2"
    assert store.delete("alpha") is True
    assert store.delete("alpha") is False
    assert store.get("alpha") is None


def test_namespaces_are_isolated(temp_db):
    SQLiteKeyValueStore("one").set("k", "a")
    SQLiteKeyValueStore("two").set("k", "b")

    assert SQLiteKeyValueStore("one").get("k") == "a"
    assert SQLiteKeyValueStore("two").get("k") == "b"


def test_tour_progress_persists_in_sqlite(temp_db):
    progress = TourProgress(SQLiteKeyValueStore())
    progress.mark_completed("user-1", "dashboard")
    progress.mark_completed("user-1", "social")

    rows = db._query("SELECT namespace, key, value FROM kv_flags")
    assert len(rows) == 1
    assert rows[0]["key"] == "tour_completed_user-1"
    assert json.loads(rows[0]["value"]) == {"dashboard": True, "social": True}

    assert progress.reset_tour("user-1", "social") == {"dashboard": True}
    assert progress.reset_all_tours("user-1") is True
    assert progress.completed_tours("user-1") == {}


class TourProgressTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryKeyValueStore()
        self.progress = TourProgress(self.store)

    def test_unknown_user_has_no_tours(self):
        self.assertEqual(self.progress.completed_tours("nobody"), {})

    def test_reset_specific_tour_keeps_others(self):
        self.progress.mark_completed("u", "dashboard")
        self.progress.mark_completed("u", "timetable")
        self.assertEqual(self.progress.reset_tour("u", "dashboard"), {"timetable": True})

    def test_reset_missing_tour_is_noop(self):
        self.progress.mark_completed("u", "dashboard")
        self.assertEqual(self.progress.reset_tour("u", "groups"), {"dashboard": True})

    def test_corrupt_state_is_discarded(self):
        self.store.set(tour_key("u"), "{not json")
        self.assertEqual(self.progress.completed_tours("u"), {})
        self.store.set(tour_key("u"), "[1, 2]")
        self.assertEqual(self.progress.completed_tours("u"), {})

    def test_reset_all_reports_whether_state_existed(self):
        self.assertFalse(self.progress.reset_all_tours("u"))
        self.progress.mark_completed("u", "dashboard")
        self.assertTrue(self.progress.reset_all_tours("u"))


if __name__ == "__main__":
    unittest.main()
