"""Tests for workout stats and the saved-workout stores."""

from datetime import date, datetime, timedelta

import gspread
import pytest
import requests
from google.auth.exceptions import RefreshError, TransportError

from conftest import BrokenSpreadsheet, make_workout
from errors import PersistenceFailure
from settings import StudioSettings
from storage import (
    SAVED_HEADERS, SAVED_TAB, STATS_HEADERS, STATS_TAB, InMemoryWorkoutStore, SavedWorkout,
    SheetsWorkoutStore, WorkoutStats, apply_completion, open_spreadsheet, record_completion,
)

TODAY = date(2026, 3, 14)


def saved(name: str, user_id: str = "alex", minutes_ago: int = 0) -> SavedWorkout:
    return SavedWorkout(
        name=name,
        workout=make_workout([30, 45], rests=[10, 0]),
        user_id=user_id,
        preferences={"timeMinutes": 5},
        saved_at=datetime(2026, 3, 14, 12, 0) - timedelta(minutes=minutes_ago),
    )


class TestApplyCompletion:
    """Test streak and total bookkeeping."""

    def test_first_workout(self):
        stats = apply_completion(WorkoutStats(), make_workout([60, 60]), TODAY)
        assert stats == WorkoutStats(streak=1, total_workouts=1, total_minutes=2, last_workout_date=TODAY)

    def test_same_day_keeps_streak(self):
        before = WorkoutStats(streak=4, total_workouts=9, total_minutes=30, last_workout_date=TODAY)
        stats = apply_completion(before, make_workout([60]), TODAY)
        assert stats.streak == 4
        assert stats.total_workouts == 10

    def test_next_day_extends_streak(self):
        before = WorkoutStats(streak=4, total_workouts=9, total_minutes=30,
                              last_workout_date=TODAY - timedelta(days=1))
        assert apply_completion(before, make_workout([60]), TODAY).streak == 5

    def test_gap_resets_streak(self):
        before = WorkoutStats(streak=4, total_workouts=9, total_minutes=30,
                              last_workout_date=TODAY - timedelta(days=3))
        assert apply_completion(before, make_workout([60]), TODAY).streak == 1

    def test_minutes_round_half_up(self):
        assert apply_completion(WorkoutStats(), make_workout([90]), TODAY).total_minutes == 2
        assert apply_completion(WorkoutStats(), make_workout([80]), TODAY).total_minutes == 1

    def test_stats_dict_round_trip(self):
        stats = WorkoutStats(streak=2, total_workouts=3, total_minutes=7, last_workout_date=TODAY)
        assert stats.to_dict()["lastWorkoutDate"] == "2026-03-14"
        assert WorkoutStats.from_dict(stats.to_dict()) == stats


class TestInMemoryStore:
    def test_empty_stats(self):
        assert InMemoryWorkoutStore().load_stats("alex") == WorkoutStats()

    def test_record_completion_saves_stats(self):
        store = InMemoryWorkoutStore()
        record_completion(store, "alex", make_workout([60]), today=TODAY)
        stats = record_completion(store, "alex", make_workout([60]), today=TODAY + timedelta(days=1))

        assert stats.streak == 2
        assert store.load_stats("alex") == stats
        assert store.load_stats("sam") == WorkoutStats()

    def test_saved_workouts_newest_first_per_user(self):
        store = InMemoryWorkoutStore()
        older, newer, other = saved("Older", minutes_ago=30), saved("Newer"), saved("Other", user_id="sam")
        for record in (older, newer, other):
            store.save_workout(record)

        assert [r.name for r in store.list_saved_workouts("alex")] == ["Newer", "Older"]
        assert [r.name for r in store.list_saved_workouts("sam")] == ["Other"]

    def test_delete_and_increment(self):
        store = InMemoryWorkoutStore()
        record = saved("Morning")
        store.save_workout(record)

        store.increment_times_completed(record.id)
        store.increment_times_completed(record.id)
        assert store.list_saved_workouts("alex")[0].times_completed == 2

        store.delete_workout(record.id)
        assert store.list_saved_workouts("alex") == []

    def test_increment_unknown_record(self):
        with pytest.raises(PersistenceFailure):
            InMemoryWorkoutStore().increment_times_completed("missing")


class TestSheetsStore:
    """Test SheetsWorkoutStore against an in-memory spreadsheet."""

    def test_creates_tabs_with_headers(self, spreadsheet):
        SheetsWorkoutStore(spreadsheet).ensure_worksheets()

        assert spreadsheet.worksheet(SAVED_TAB).rows == [SAVED_HEADERS]
        assert spreadsheet.worksheet(STATS_TAB).rows == [STATS_HEADERS]

    def test_stats_insert_then_update(self, spreadsheet):
        store = SheetsWorkoutStore(spreadsheet)
        assert store.load_stats("alex") == WorkoutStats()

        first = record_completion(store, "alex", make_workout([120]), today=TODAY)
        second = record_completion(store, "alex", make_workout([60]), today=TODAY + timedelta(days=1))

        assert first.total_minutes == 2
        assert store.load_stats("alex") == second == WorkoutStats(2, 2, 3, TODAY + timedelta(days=1))
        assert len(spreadsheet.worksheet(STATS_TAB).rows) == 2

    def test_stats_are_per_user(self, spreadsheet):
        store = SheetsWorkoutStore(spreadsheet)
        store.save_stats("alex", WorkoutStats(3, 3, 3, TODAY))
        store.save_stats("sam", WorkoutStats(1, 1, 1, TODAY))

        assert store.load_stats("alex").streak == 3
        assert store.load_stats("sam").streak == 1

    def test_save_and_list(self, spreadsheet):
        store = SheetsWorkoutStore(spreadsheet)
        older, newer = saved("Older", minutes_ago=30), saved("Newer")
        store.save_workout(older)
        store.save_workout(newer)
        store.save_workout(saved("Other", user_id="sam"))

        records = store.list_saved_workouts("alex")

        assert [r.name for r in records] == ["Newer", "Older"]
        assert records[0].workout == newer.workout
        assert records[0].saved_at == newer.saved_at
        assert records[0].preferences == {"timeMinutes": 5}

    def test_skips_unreadable_rows(self, spreadsheet):
        store = SheetsWorkoutStore(spreadsheet)
        store.save_workout(saved("Good"))
        spreadsheet.worksheet(SAVED_TAB).append_row(
            ["bad", "alex", "Broken", "2026-03-14T11:00:00", "0", "{oops", "{}"])

        assert [r.name for r in store.list_saved_workouts("alex")] == ["Good"]

    def test_increment_and_delete(self, spreadsheet):
        store = SheetsWorkoutStore(spreadsheet)
        record = saved("Morning")
        store.save_workout(record)

        store.increment_times_completed(record.id)
        assert store.list_saved_workouts("alex")[0].times_completed == 1

        store.delete_workout(record.id)
        assert store.list_saved_workouts("alex") == []
        assert spreadsheet.worksheet(SAVED_TAB).rows == [SAVED_HEADERS]

    def test_increment_unknown_record(self, spreadsheet):
        with pytest.raises(PersistenceFailure):
            SheetsWorkoutStore(spreadsheet).increment_times_completed("missing")

    @pytest.mark.parametrize("error", [
        gspread.exceptions.GSpreadException("quota exceeded"),
        requests.exceptions.ConnectionError("network down"),
        RefreshError("invalid_grant"),
        TransportError("dns lookup failed"),
    ])
    def test_backend_errors_become_persistence_failures(self, error):
        store = SheetsWorkoutStore(BrokenSpreadsheet(error))
        with pytest.raises(PersistenceFailure):
            store.load_stats("alex")
        with pytest.raises(PersistenceFailure):
            store.save_workout(saved("Morning"))
        with pytest.raises(PersistenceFailure):
            store.list_saved_workouts("alex")

    def test_worksheet_handles_are_reused(self, spreadsheet):
        store = SheetsWorkoutStore(spreadsheet)
        for _ in range(5):
            store.load_stats("alex")
        store.save_workout(saved("Morning"))
        store.list_saved_workouts("alex")

        assert spreadsheet.lookups == 2

    def test_open_without_credentials(self):
        with pytest.raises(PersistenceFailure):
            open_spreadsheet(StudioSettings())
