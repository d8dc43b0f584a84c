import json
import random
import unittest

from aggregate_updater.aggregate_store import DocumentRef, InMemoryAggregateStore, read_aggregate
from aggregate_updater.config import UpdaterConfig
from aggregate_updater.context import TaskContext
from aggregate_updater.errors import ValidationSkip
from aggregate_updater.event_utils import parse_event
from aggregate_updater.handlers.teacher_stats import apply_contribution, update_teacher_stats


def _config() -> UpdaterConfig:
    return UpdaterConfig(
        project_id="proj",
        database_id="main",
        stats_collection_id="stats",
        stats_document_id="teachers",
        cache_collection_id="cache",
        links_cache_document_id="links",
        uploaders_cache_document_id="uploaders",
        note_collection_id="notes",
        form_collection_id="forms",
        youtube_collection_id="youtube",
    )


class TestApplyContribution(unittest.TestCase):
    def test_new_entry_is_created(self) -> None:
        out = apply_contribution([], name="Alice", categories=["notes"], delta=1)
        self.assertEqual(out, [{"name": "Alice", "notes": 1, "forms": 0, "youtube": 0, "total": 1}])

    def test_counters_clamp_at_zero(self) -> None:
        out = apply_contribution([], name="Alice", categories=["forms"], delta=-1)
        self.assertEqual(out, [{"name": "Alice", "notes": 0, "forms": 0, "youtube": 0, "total": 0}])

    def test_unmatched_collection_moves_total_only(self) -> None:
        out = apply_contribution([], name="Alice", categories=[], delta=1)
        self.assertEqual(out[0]["total"], 1)
        self.assertEqual(out[0]["notes"] + out[0]["forms"] + out[0]["youtube"], 0)

    def test_sorted_descending_and_stable_on_ties(self) -> None:
        entries = [
            {"name": "A", "notes": 1, "forms": 0, "youtube": 0, "total": 1},
            {"name": "B", "notes": 1, "forms": 0, "youtube": 0, "total": 1},
            {"name": "C", "notes": 2, "forms": 0, "youtube": 0, "total": 2},
        ]
        out = apply_contribution(entries, name="D", categories=["notes"], delta=1)
        self.assertEqual([e["name"] for e in out], ["C", "A", "B", "D"])

    def test_unknown_entry_fields_are_kept(self) -> None:
        entries = [{"name": "A", "notes": 1, "forms": 0, "youtube": 0, "total": 1, "avatar": "a.png"}]
        out = apply_contribution(entries, name="A", categories=["notes"], delta=1)
        self.assertEqual(out[0]["avatar"], "a.png")
        self.assertEqual(out[0]["notes"], 2)

    def test_other_rows_pass_through_untouched(self) -> None:
        bob = {"name": "Bob", "notes": "3", "forms": 1.0, "youtube": 2, "total": "6"}
        entries = [bob, "legacy-row"]
        before = json.dumps(entries)
        out = apply_contribution(entries, name="Alice", categories=["notes"], delta=1)
        self.assertEqual(json.dumps(entries), before)
        self.assertEqual(json.dumps(out[0]), json.dumps(bob))
        self.assertEqual(out[1], {"name": "Alice", "notes": 1, "forms": 0, "youtube": 0, "total": 1})
        self.assertEqual(out[2], "legacy-row")

    def test_matched_row_with_string_counters_is_normalized(self) -> None:
        entries = [{"name": "Alice", "notes": "2", "forms": None, "youtube": "x", "total": "2.0"}]
        out = apply_contribution(entries, name="Alice", categories=["notes"], delta=1)
        self.assertEqual(out, [{"name": "Alice", "notes": 3, "forms": 0, "youtube": 0, "total": 3}])

    def test_unreadable_totals_sort_as_zero(self) -> None:
        entries = [
            {"name": "A", "total": "n/a"},
            {"name": "B", "total": True},
            {"name": "C", "notes": 0, "forms": 0, "youtube": 0, "total": 0},
        ]
        out = apply_contribution(entries, name="C", categories=[], delta=1)
        self.assertEqual([e["name"] for e in out], ["C", "A", "B"])
        self.assertEqual(out[1], {"name": "A", "total": "n/a"})

    def test_random_event_sequences_never_go_negative(self) -> None:
        rng = random.Random(7)
        entries: list = []
        for _ in range(300):
            category = rng.choice(["notes", "forms", "youtube", None])
            delta = rng.choice([1, -1])
            entries = apply_contribution(
                entries,
                name="Alice",
                categories=[category] if category else [],
                delta=delta,
            )
            entry = entries[0]
            for counter in ("notes", "forms", "youtube", "total"):
                self.assertGreaterEqual(entry[counter], 0)

    def test_total_tracks_creates_minus_deletes_without_clamping(self) -> None:
        entries: list = []
        for _ in range(3):
            entries = apply_contribution(entries, name="Alice", categories=["notes"], delta=1)
        entries = apply_contribution(entries, name="Alice", categories=["youtube"], delta=1)
        entries = apply_contribution(entries, name="Alice", categories=["notes"], delta=-1)
        self.assertEqual(entries[0], {"name": "Alice", "notes": 2, "forms": 0, "youtube": 1, "total": 3})


class TestUpdateTeacherStats(unittest.TestCase):
    def setUp(self) -> None:
        self.config = _config()
        self.store = InMemoryAggregateStore()
        self.ref = DocumentRef("main", "stats", "teachers")

    def _run(self, event_name: str, payload: dict) -> dict:
        ctx = TaskContext(store=self.store, config=self.config, event=parse_event(event_name, payload))
        return update_teacher_stats(ctx)

    def _stats(self) -> list:
        return read_aggregate(self.store, self.ref, default=[])

    def test_scenario_first_note_on_empty_document(self) -> None:
        self.store.provision(self.ref)
        self._run("databases.main.collections.notes.documents.n1.create", {"userName": "Alice"})
        self.assertEqual(self._stats(), [{"name": "Alice", "notes": 1, "forms": 0, "youtube": 0, "total": 1}])

    def test_scenario_delete_youtube_reaches_exact_zero(self) -> None:
        self.store.provision(
            self.ref, json.dumps([{"name": "Bob", "notes": 0, "forms": 0, "youtube": 1, "total": 1}])
        )
        self._run("databases.main.collections.youtube.documents.y1.delete", {"createdBy": "Bob"})
        self.assertEqual(self._stats(), [{"name": "Bob", "notes": 0, "forms": 0, "youtube": 0, "total": 0}])

    def test_update_events_are_skipped_for_every_collection(self) -> None:
        self.store.provision(self.ref)
        for coll in ("notes", "forms", "youtube", "links"):
            with self.subTest(collection=coll):
                with self.assertRaises(ValidationSkip):
                    self._run(f"databases.main.collections.{coll}.documents.d1.update", {"userName": "Alice"})
        self.assertEqual(self.store.write_count, 0)

    def test_missing_attribution_is_skipped(self) -> None:
        self.store.provision(self.ref)
        with self.assertRaises(ValidationSkip):
            self._run("databases.main.collections.notes.documents.n1.create", {"title": "x"})
        self.assertEqual(self.store.write_count, 0)

    def test_untracked_collection_still_writes_total(self) -> None:
        self.store.provision(self.ref, "{}")
        result = self._run("databases.main.collections.links.documents.l1.create", {"createdBy": "Carol"})
        self.assertTrue(result["applied"])
        self.assertEqual(self._stats(), [{"name": "Carol", "notes": 0, "forms": 0, "youtube": 0, "total": 1}])

    def test_delete_before_create_stays_at_zero(self) -> None:
        self.store.provision(self.ref)
        self._run("databases.main.collections.forms.documents.f1.delete", {"userName": "Dan"})
        self._run("databases.main.collections.forms.documents.f2.create", {"userName": "Dan"})
        self.assertEqual(self._stats(), [{"name": "Dan", "notes": 0, "forms": 1, "youtube": 0, "total": 1}])

    def test_stored_legacy_rows_survive_a_write(self) -> None:
        bob = {"name": "Bob", "notes": "3", "forms": 1.0, "youtube": 2, "total": "6"}
        self.store.provision(self.ref, json.dumps([bob, "legacy-row"]))
        self._run("databases.main.collections.notes.documents.n1.create", {"userName": "Alice"})
        stats = self._stats()
        self.assertEqual(json.dumps(stats[0]), json.dumps(bob))
        self.assertEqual(stats[1]["name"], "Alice")
        self.assertEqual(stats[2], "legacy-row")


if __name__ == "__main__":
    unittest.main()
