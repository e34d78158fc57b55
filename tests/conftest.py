import random
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional

import gspread
import pytest

# Ensure the project root is on sys.path so the flat modules import
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from gym_logic import Exercise, WorkoutPreferences, build_workout  # noqa: E402


def make_exercise(slug: str, duration: int = 30, rest: int = 0, *, space: str = "minimal",
                  energy: str = "low", focus: str = "core", equipment: str = "none") -> Exercise:
    return Exercise(
        id=slug,
        name=slug.replace("-", " ").title(),
        duration_seconds=duration,
        difficulty=1,
        space_requirement=space,
        energy_level=energy,
        body_focus=focus,
        equipment=equipment,
        instructions=f"Do {slug}",
        rest_after_seconds=rest,
    )


def make_workout(durations: List[int], rests: Optional[List[int]] = None):
    rests = rests or [0] * len(durations)
    exercises = [make_exercise(f"ex-{i + 1}", d, r) for i, (d, r) in enumerate(zip(durations, rests))]
    return build_workout(exercises, WorkoutPreferences(5, "normal", "medium", "none"))


# ---------------------------------------------------------------------------
# Generator Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for reproducible workouts."""
    return random.Random(1234)


@pytest.fixture
def chair_catalog() -> List[Exercise]:
    """Three exercises that all suit a tight, low-energy, chair workout."""
    return [
        make_exercise("seated-leg-lifts", 30, focus="core", equipment="chair"),
        make_exercise("chair-squats", 30, focus="lower", equipment="chair"),
        make_exercise("neck-rolls", 30, focus="flexibility", equipment="none"),
    ]


@pytest.fixture
def chair_preferences() -> WorkoutPreferences:
    return WorkoutPreferences(time_minutes=5, space_type="tight", energy_level="low", equipment="chair")


# ---------------------------------------------------------------------------
# Session Fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def completions() -> list:
    """Collects workouts passed to a session's on_complete callback."""
    return []


# ---------------------------------------------------------------------------
# Anthropic Fakes
# ---------------------------------------------------------------------------


class FakeMessages:
    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


class FakeAnthropic:
    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.messages = FakeMessages(reply, error)


# ---------------------------------------------------------------------------
# Google Sheets Fakes
# ---------------------------------------------------------------------------


class FakeWorksheet:
    """Keeps rows as lists of strings, the way Sheets hands values back."""

    def __init__(self, title: str) -> None:
        self.title = title
        self.rows: List[List[str]] = []

    def append_row(self, values) -> None:
        self.rows.append([str(v) for v in values])

    def get_all_records(self, numericise_ignore=None):
        if not self.rows:
            return []
        header = self.rows[0]
        return [dict(zip(header, row + [""] * (len(header) - len(row)))) for row in self.rows[1:]]

    def col_values(self, col: int) -> List[str]:
        return [row[col - 1] for row in self.rows]

    def row_values(self, row: int) -> List[str]:
        return list(self.rows[row - 1])

    def update_cell(self, row: int, col: int, value) -> None:
        self.rows[row - 1][col - 1] = str(value)

    def delete_rows(self, index: int) -> None:
        del self.rows[index - 1]


class FakeSpreadsheet:
    def __init__(self) -> None:
        self.sheets: List[FakeWorksheet] = []
        self.lookups = 0

    def worksheets(self) -> List[FakeWorksheet]:
        return list(self.sheets)

    def add_worksheet(self, title: str, rows: int, cols: int) -> FakeWorksheet:
        ws = FakeWorksheet(title)
        self.sheets.append(ws)
        return ws

    def worksheet(self, title: str) -> FakeWorksheet:
        self.lookups += 1
        for ws in self.sheets:
            if ws.title == title:
                return ws
        raise gspread.exceptions.WorksheetNotFound(title)


class BrokenSpreadsheet(FakeSpreadsheet):
    """Fails every call the way an offline or rejected backend does."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        super().__init__()
        self.error = error or gspread.exceptions.GSpreadException("quota exceeded")

    def worksheets(self):
        raise self.error


@pytest.fixture
def spreadsheet() -> FakeSpreadsheet:
    return FakeSpreadsheet()
