"""
storage.py — Workout persistence
Stats and saved-workout records behind one store interface, with a
Google Sheets backend and an in-memory one for guests and tests.
"""

import json
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Optional, Protocol

import gspread
import pandas as pd
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from loguru import logger

from errors import PersistenceFailure
from gym_logic import Workout, round_half_up
from settings import StudioSettings

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

SAVED_TAB = "saved_workouts"
SAVED_HEADERS = ["Id", "User", "Name", "Saved_At", "Times_Completed", "Workout_JSON", "Preferences_JSON"]
STATS_TAB = "workout_stats"
STATS_HEADERS = ["User", "Streak", "Total_Workouts", "Total_Minutes", "Last_Workout_Date"]

SHEETS_ERRORS = (
    gspread.exceptions.GSpreadException,
    GoogleAuthError,
    requests.exceptions.RequestException,
)


# ─────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class WorkoutStats:
    streak: int = 0
    total_workouts: int = 0
    total_minutes: int = 0
    last_workout_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "streak": self.streak,
            "totalWorkouts": self.total_workouts,
            "totalMinutes": self.total_minutes,
            "lastWorkoutDate": self.last_workout_date.isoformat() if self.last_workout_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkoutStats":
        last = data.get("lastWorkoutDate")
        return cls(
            streak=int(data.get("streak", 0)),
            total_workouts=int(data.get("totalWorkouts", 0)),
            total_minutes=int(data.get("totalMinutes", 0)),
            last_workout_date=date.fromisoformat(last) if last else None,
        )


@dataclass(frozen=True)
class SavedWorkout:
    name: str
    workout: Workout
    user_id: str
    preferences: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    saved_at: datetime = field(default_factory=lambda: datetime.now().replace(microsecond=0))
    times_completed: int = 0


def apply_completion(stats: WorkoutStats, workout: Workout, today: date) -> WorkoutStats:
    """
    Stats after finishing ``workout`` on ``today``.
    A workout on the day after the last one extends the streak, a second
    workout on the same day keeps it, anything else restarts it at 1.
    """
    last = stats.last_workout_date
    if last == today:
        streak = stats.streak
    elif last == today - timedelta(days=1):
        streak = stats.streak + 1
    else:
        streak = 1

    return WorkoutStats(
        streak=streak,
        total_workouts=stats.total_workouts + 1,
        total_minutes=stats.total_minutes + round_half_up(workout.total_duration_seconds / 60),
        last_workout_date=today,
    )


# ─────────────────────────────────────────────
# Store interface
# ─────────────────────────────────────────────

class WorkoutStore(Protocol):
    def load_stats(self, user_id: str) -> WorkoutStats: ...

    def save_stats(self, user_id: str, stats: WorkoutStats) -> None: ...

    def list_saved_workouts(self, user_id: str) -> list[SavedWorkout]: ...

    def save_workout(self, record: SavedWorkout) -> None: ...

    def delete_workout(self, record_id: str) -> None: ...

    def increment_times_completed(self, record_id: str) -> None: ...


def record_completion(store: WorkoutStore, user_id: str, workout: Workout,
                      today: Optional[date] = None) -> WorkoutStats:
    stats = apply_completion(store.load_stats(user_id), workout, today or date.today())
    store.save_stats(user_id, stats)
    logger.info(f"Recorded workout {workout.id} for {user_id}: streak={stats.streak}")
    return stats


class InMemoryWorkoutStore:
    """Process-local store; used for guest sessions and when Sheets is offline."""

    def __init__(self) -> None:
        self._stats: dict[str, WorkoutStats] = {}
        self._saved: dict[str, SavedWorkout] = {}

    def load_stats(self, user_id: str) -> WorkoutStats:
        return self._stats.get(user_id, WorkoutStats())

    def save_stats(self, user_id: str, stats: WorkoutStats) -> None:
        self._stats[user_id] = stats

    def list_saved_workouts(self, user_id: str) -> list[SavedWorkout]:
        mine = [r for r in self._saved.values() if r.user_id == user_id]
        return sorted(mine, key=lambda r: r.saved_at, reverse=True)

    def save_workout(self, record: SavedWorkout) -> None:
        self._saved[record.id] = record

    def delete_workout(self, record_id: str) -> None:
        self._saved.pop(record_id, None)

    def increment_times_completed(self, record_id: str) -> None:
        record = self._saved.get(record_id)
        if record is None:
            raise PersistenceFailure(f"No saved workout with id {record_id}")
        self._saved[record_id] = replace(record, times_completed=record.times_completed + 1)


# ─────────────────────────────────────────────
# Google Sheets
# ─────────────────────────────────────────────

@contextmanager
def sheets_errors(action: str):
    """Re-raise gspread, auth and network errors as PersistenceFailure."""
    try:
        yield
    except SHEETS_ERRORS as e:
        logger.error(f"Google Sheets {action} failed: {e}")
        raise PersistenceFailure(f"Could not {action}: {e}") from e


def open_spreadsheet(settings: StudioSettings):
    """Authenticate with the service account and open the studio spreadsheet."""
    if not settings.sheets_enabled:
        raise PersistenceFailure("No Google credentials configured")
    try:
        creds = Credentials.from_service_account_info(settings.service_account_info, scopes=SCOPES)
        client = gspread.authorize(creds)
    except (GoogleAuthError, ValueError, KeyError) as e:
        logger.error(f"Could not authenticate with Google: {e}")
        raise PersistenceFailure(f"Could not connect to Google Sheets: {e}") from e

    with sheets_errors("open spreadsheet"):
        if settings.sheet_url:
            return client.open_by_url(settings.sheet_url)
        if settings.sheet_id:
            return client.open_by_key(settings.sheet_id)
        return client.open(settings.sheet_name)


class SheetsWorkoutStore:
    """Stats and saved workouts kept in two tabs of one spreadsheet."""

    def __init__(self, spreadsheet) -> None:
        self.spreadsheet = spreadsheet
        self._ready = False
        self._handles: dict = {}

    def ensure_worksheets(self) -> None:
        """Make sure both required tabs exist with headers."""
        if self._ready:
            return
        with sheets_errors("prepare worksheets"):
            existing = [ws.title for ws in self.spreadsheet.worksheets()]
            if SAVED_TAB not in existing:
                ws = self.spreadsheet.add_worksheet(title=SAVED_TAB, rows=1000, cols=len(SAVED_HEADERS))
                ws.append_row(SAVED_HEADERS)
            if STATS_TAB not in existing:
                ws = self.spreadsheet.add_worksheet(title=STATS_TAB, rows=100, cols=len(STATS_HEADERS))
                ws.append_row(STATS_HEADERS)
        self._ready = True

    def _worksheet(self, title: str):
        # Each metadata fetch counts against the per-minute read quota
        if title not in self._handles:
            self.ensure_worksheets()
            self._handles[title] = self.spreadsheet.worksheet(title)
        return self._handles[title]

    def _records(self, title: str) -> pd.DataFrame:
        # Keep every cell a string: hex ids like "12e4..." would parse as floats
        ws = self._worksheet(title)
        return pd.DataFrame(ws.get_all_records(numericise_ignore=["all"]))

    @staticmethod
    def _row_of(ws, key: str) -> Optional[int]:
        keys = ws.col_values(1)
        return keys.index(key, 1) + 1 if key in keys[1:] else None

    def load_stats(self, user_id: str) -> WorkoutStats:
        with sheets_errors("load stats"):
            df = self._records(STATS_TAB)
        if df.empty:
            return WorkoutStats()
        mine = df[df["User"] == user_id]
        if mine.empty:
            return WorkoutStats()
        row = mine.iloc[0]
        last = row["Last_Workout_Date"]
        return WorkoutStats(
            streak=int(row["Streak"] or 0),
            total_workouts=int(row["Total_Workouts"] or 0),
            total_minutes=int(row["Total_Minutes"] or 0),
            last_workout_date=date.fromisoformat(last) if last else None,
        )

    def save_stats(self, user_id: str, stats: WorkoutStats) -> None:
        values = [
            user_id, stats.streak, stats.total_workouts, stats.total_minutes,
            stats.last_workout_date.isoformat() if stats.last_workout_date else "",
        ]
        with sheets_errors("save stats"):
            ws = self._worksheet(STATS_TAB)
            row = self._row_of(ws, user_id)
            if row is None:
                ws.append_row(values)
            else:
                for col, value in enumerate(values[1:], start=2):
                    ws.update_cell(row, col, value)

    def list_saved_workouts(self, user_id: str) -> list[SavedWorkout]:
        with sheets_errors("load saved workouts"):
            df = self._records(SAVED_TAB)
        if df.empty:
            return []
        mine = df[df["User"] == user_id].sort_values("Saved_At", ascending=False)

        records = []
        for _, row in mine.iterrows():
            try:
                records.append(SavedWorkout(
                    id=row["Id"],
                    user_id=row["User"],
                    name=row["Name"],
                    saved_at=datetime.fromisoformat(row["Saved_At"]),
                    times_completed=int(row["Times_Completed"] or 0),
                    workout=Workout.from_dict(json.loads(row["Workout_JSON"])),
                    preferences=json.loads(row["Preferences_JSON"] or "{}"),
                ))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable saved workout {row['Id']}: {e}")
        return records

    def save_workout(self, record: SavedWorkout) -> None:
        with sheets_errors("save workout"):
            self._worksheet(SAVED_TAB).append_row([
                record.id, record.user_id, record.name,
                record.saved_at.isoformat(), record.times_completed,
                json.dumps(record.workout.to_dict()), json.dumps(record.preferences),
            ])
        logger.info(f"Saved workout {record.id} ({record.name}) for {record.user_id}")

    def delete_workout(self, record_id: str) -> None:
        with sheets_errors("delete workout"):
            ws = self._worksheet(SAVED_TAB)
            row = self._row_of(ws, record_id)
            if row is not None:
                ws.delete_rows(row)

    def increment_times_completed(self, record_id: str) -> None:
        col = SAVED_HEADERS.index("Times_Completed") + 1
        with sheets_errors("update saved workout"):
            ws = self._worksheet(SAVED_TAB)
            row = self._row_of(ws, record_id)
            if row is None:
                raise PersistenceFailure(f"No saved workout with id {record_id}")
            current = ws.row_values(row)[col - 1]
            ws.update_cell(row, col, int(current or 0) + 1)
