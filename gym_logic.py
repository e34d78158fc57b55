"""
gym_logic.py — The Vibe Gym Brain
Exercise catalog, rule-based workout generator, and smart-swap logic.
"""

import json
import math
import random
import uuid
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from loguru import logger

from errors import InvalidPreferences

# ─────────────────────────────────────────────
# Data Models
# ─────────────────────────────────────────────

TIME_OPTIONS = [2, 3, 5]
SPACE_TYPES = ["tight", "normal", "outdoor"]
ENERGY_LEVELS = ["low", "medium", "high"]     # ordinal order matters
EQUIPMENT_OPTIONS = ["none", "chair", "wall"]
SPACE_REQUIREMENTS = ["minimal", "normal", "large"]
BODY_FOCUSES = ["upper", "lower", "core", "cardio", "flexibility"]


@dataclass(frozen=True)
class Exercise:
    id: str
    name: str
    duration_seconds: int
    difficulty: int             # 1-3
    space_requirement: str      # "minimal", "normal", "large"
    energy_level: str           # "low", "medium", "high"
    body_focus: str             # "upper", "lower", "core", "cardio", "flexibility"
    equipment: str              # "none", "chair", "wall"
    instructions: str
    reps: Optional[int] = None  # informational, the timer ignores it
    rest_after_seconds: int = 0
    form_tips: tuple[str, ...] = field(default_factory=tuple)
    category: str = ""          # "warmup", "main", "cooldown" on AI plans

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "durationSeconds": self.duration_seconds,
            "reps": self.reps,
            "difficulty": self.difficulty,
            "spaceRequirement": self.space_requirement,
            "energyLevel": self.energy_level,
            "bodyFocus": self.body_focus,
            "equipment": self.equipment,
            "instructions": self.instructions,
            "restAfterSeconds": self.rest_after_seconds,
            "formTips": list(self.form_tips),
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Exercise":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            duration_seconds=int(data["durationSeconds"]),
            reps=data.get("reps"),
            difficulty=int(data["difficulty"]),
            space_requirement=data["spaceRequirement"],
            energy_level=data["energyLevel"],
            body_focus=data["bodyFocus"],
            equipment=data["equipment"],
            instructions=data.get("instructions", ""),
            rest_after_seconds=int(data.get("restAfterSeconds") or 0),
            form_tips=tuple(data.get("formTips") or ()),
            category=data.get("category", ""),
        )


@dataclass(frozen=True)
class WorkoutPreferences:
    time_minutes: int
    space_type: str
    energy_level: str
    equipment: str

    def to_dict(self) -> dict:
        return {
            "timeMinutes": self.time_minutes,
            "spaceType": self.space_type,
            "energyLevel": self.energy_level,
            "equipment": self.equipment,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "WorkoutPreferences":
        return validate_preferences(
            time_minutes=data.get("timeMinutes"),
            space_type=data.get("spaceType"),
            energy_level=data.get("energyLevel"),
            equipment=data.get("equipment"),
        )


@dataclass(frozen=True)
class Workout:
    id: str
    exercises: tuple[Exercise, ...]
    total_duration_seconds: int
    estimated_calories: int
    preferences: WorkoutPreferences
    source: str = "local"       # "local", "ai", "fallback"
    title: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exercises": [e.to_dict() for e in self.exercises],
            "totalDurationSeconds": self.total_duration_seconds,
            "estimatedCalories": self.estimated_calories,
            "preferences": self.preferences.to_dict(),
            "source": self.source,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Workout":
        return cls(
            id=str(data["id"]),
            exercises=tuple(Exercise.from_dict(e) for e in data["exercises"]),
            total_duration_seconds=int(data["totalDurationSeconds"]),
            estimated_calories=int(data["estimatedCalories"]),
            preferences=WorkoutPreferences.from_dict(data["preferences"]),
            source=data.get("source", "local"),
            title=data.get("title", ""),
        )


def validate_preferences(time_minutes, space_type, energy_level, equipment) -> WorkoutPreferences:
    """Build preferences from raw questionnaire values, rejecting anything out of range."""
    if isinstance(time_minutes, bool):
        raise InvalidPreferences(f"Invalid time: {time_minutes!r}")
    try:
        minutes = int(time_minutes)
    except (TypeError, ValueError):
        raise InvalidPreferences(f"Invalid time: {time_minutes!r}") from None
    if minutes not in TIME_OPTIONS:
        raise InvalidPreferences(f"Time must be one of {TIME_OPTIONS}, got {minutes}")
    if space_type not in SPACE_TYPES:
        raise InvalidPreferences(f"Unknown space type: {space_type!r}")
    if energy_level not in ENERGY_LEVELS:
        raise InvalidPreferences(f"Unknown energy level: {energy_level!r}")
    if equipment not in EQUIPMENT_OPTIONS:
        raise InvalidPreferences(f"Unknown equipment: {equipment!r}")
    return WorkoutPreferences(minutes, space_type, energy_level, equipment)


# ─────────────────────────────────────────────
# Exercise Library
# ─────────────────────────────────────────────

EXERCISE_DB: tuple[Exercise, ...] = (
    # --- Desk / Office Stretches ---
    Exercise("neck-rolls", "Neck Rolls", 30, 1, "minimal", "low", "flexibility", "none",
             "Slowly roll your neck in circles, 5 times each direction"),
    Exercise("shoulder-shrugs", "Shoulder Shrugs", 30, 1, "minimal", "low", "flexibility", "none",
             "Lift shoulders to ears, hold 2 seconds, release. Repeat 10 times"),
    Exercise("seated-spinal-twist", "Seated Spinal Twist", 45, 1, "minimal", "low", "flexibility", "chair",
             "Sit tall, twist gently to each side, hold 15 seconds"),

    # --- Bodyweight Strength ---
    Exercise("push-ups", "Push-ups", 45, 2, "normal", "medium", "upper", "none",
             "Standard or modified push-ups, maintain straight line", reps=10),
    Exercise("wall-push-ups", "Wall Push-ups", 30, 1, "minimal", "low", "upper", "wall",
             "Stand arms length from wall, push against wall", reps=15),
    Exercise("squats", "Squats", 45, 2, "normal", "medium", "lower", "none",
             "Feet shoulder-width apart, lower down like sitting in chair", reps=15),
    Exercise("chair-squats", "Chair Squats", 30, 1, "minimal", "low", "lower", "chair",
             "Stand up and sit down from chair without using hands", reps=10),
    Exercise("lunges", "Lunges", 60, 2, "normal", "medium", "lower", "none",
             "Step forward, lower back knee toward ground, alternate legs", reps=12),

    # --- Cardio Bursts ---
    Exercise("jumping-jacks", "Jumping Jacks", 30, 2, "normal", "high", "cardio", "none",
             "Jump feet apart while raising arms overhead, repeat quickly", reps=20),
    Exercise("high-knees", "High Knees", 30, 2, "minimal", "high", "cardio", "none",
             "March in place, bringing knees up to waist level"),
    Exercise("mountain-climbers", "Mountain Climbers", 30, 3, "normal", "high", "cardio", "none",
             "Plank position, alternate bringing knees to chest quickly"),
    Exercise("step-ups", "Step-ups", 45, 2, "minimal", "medium", "cardio", "chair",
             "Step up onto chair, alternate legs, control the movement", reps=16),

    # --- Core ---
    Exercise("plank", "Plank", 30, 2, "normal", "medium", "core", "none",
             "Hold straight line from head to heels, engage core"),
    Exercise("dead-bug", "Dead Bug", 45, 2, "normal", "low", "core", "none",
             "Lie on back, extend opposite arm and leg, alternate slowly", reps=12),
    Exercise("seated-leg-lifts", "Seated Leg Lifts", 30, 1, "minimal", "low", "core", "chair",
             "Sit tall, lift one knee at a time, hold briefly", reps=12),

    # --- Flexibility ---
    Exercise("forward-fold", "Forward Fold", 30, 1, "normal", "low", "flexibility", "none",
             "Stand, slowly fold forward, let arms hang, gentle stretch"),
    Exercise("cat-cow", "Cat-Cow Stretch", 45, 1, "normal", "low", "flexibility", "none",
             "On hands and knees, arch and round spine slowly"),
    Exercise("hip-circles", "Hip Circles", 30, 1, "minimal", "low", "flexibility", "none",
             "Hands on hips, make large circles with your hips"),

    # --- Extras for variety ---
    Exercise("calf-raises", "Calf Raises", 30, 1, "minimal", "low", "lower", "none",
             "Rise up on toes, hold briefly, lower slowly", reps=20),
    Exercise("arm-circles", "Arm Circles", 30, 1, "minimal", "low", "flexibility", "none",
             "Extend arms, make small to large circles, both directions"),
    Exercise("desk-push-ups", "Desk Push-ups", 30, 1, "minimal", "low", "upper", "chair",
             "Hands on desk edge, push-up at an angle", reps=12),
)


# ─────────────────────────────────────────────
# Generator Engine
# ─────────────────────────────────────────────

TRANSITION_BUFFER_SECONDS = 15
MAX_EXERCISES = 4
FREE_FOCUS_SLOTS = 3           # body-focus repeats allowed until this many are picked
SAFETY_NET_CAP = 3
FALLBACK_IDS = ["arm-circles", "calf-raises", "neck-rolls"]

SPACE_MATCHES = {
    "tight":   {"minimal"},
    "normal":  {"minimal", "normal"},
    "outdoor": set(SPACE_REQUIREMENTS),
}

CALORIE_RATES = {"low": 3, "medium": 5, "high": 8}   # kcal per minute
DEFAULT_CALORIE_RATE = 4


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calorie_rate(energy_level: str) -> int:
    return CALORIE_RATES.get(energy_level, DEFAULT_CALORIE_RATE)


def estimate_calories(total_seconds: int, energy_level: str) -> int:
    return round_half_up(total_seconds / 60 * calorie_rate(energy_level))


def target_duration(preferences: WorkoutPreferences) -> int:
    """Seconds available for exercises once the transition buffer is reserved."""
    return preferences.time_minutes * 60 - TRANSITION_BUFFER_SECONDS


def matches_space(exercise: Exercise, space_type: str) -> bool:
    return exercise.space_requirement in SPACE_MATCHES.get(space_type, set(SPACE_REQUIREMENTS))


def matches_energy(exercise: Exercise, energy_level: str) -> bool:
    """Allow exercises within one level of the target for variety."""
    target = ENERGY_LEVELS.index(energy_level)
    actual = ENERGY_LEVELS.index(exercise.energy_level)
    return abs(target - actual) <= 1


def matches_equipment(exercise: Exercise, equipment: str) -> bool:
    return exercise.equipment == "none" or exercise.equipment == equipment


def build_workout(exercises: Sequence[Exercise], preferences: WorkoutPreferences,
                  source: str = "local", title: str = "") -> Workout:
    """Wrap an ordered exercise list in a Workout with derived totals."""
    total = sum(e.duration_seconds for e in exercises)
    return Workout(
        id=uuid.uuid4().hex,
        exercises=tuple(exercises),
        total_duration_seconds=total,
        estimated_calories=estimate_calories(total, preferences.energy_level),
        preferences=preferences,
        source=source,
        title=title,
    )


class WorkoutGenerator:
    """
    Picks a time-bounded, varied subset of the catalog for a set of preferences.
    Pass a seeded ``random.Random`` for reproducible workouts.
    """

    def __init__(self, catalog: Sequence[Exercise] = EXERCISE_DB,
                 rng: Optional[random.Random] = None):
        self.catalog = tuple(catalog)
        self.rng = rng or random.Random()

    def filter_exercises(self, preferences: WorkoutPreferences) -> list[Exercise]:
        return [
            e for e in self.catalog
            if matches_space(e, preferences.space_type)
            and matches_energy(e, preferences.energy_level)
            and matches_equipment(e, preferences.equipment)
        ]

    def fallback_exercises(self) -> list[Exercise]:
        """The fixed baseline set, taken from this catalog when it has them."""
        by_id = {e.id: e for e in EXERCISE_DB}
        by_id.update({e.id: e for e in self.catalog})
        return [by_id[slug] for slug in FALLBACK_IDS if slug in by_id]

    def select_exercises(self, candidates: Sequence[Exercise], budget: int) -> list[Exercise]:
        if not candidates:
            return self.fallback_exercises()

        shuffled = list(candidates)
        self.rng.shuffle(shuffled)

        selected: list[Exercise] = []
        used_focus: set[str] = set()
        elapsed = 0
        for ex in shuffled:
            if elapsed + ex.duration_seconds > budget:
                continue
            if ex.body_focus in used_focus and len(selected) >= FREE_FOCUS_SLOTS:
                continue
            selected.append(ex)
            elapsed += ex.duration_seconds
            used_focus.add(ex.body_focus)
            if len(selected) >= MAX_EXERCISES:
                break

        # Ensure a minimum of two exercises when the pool allows it
        if len(selected) < 2 and len(shuffled) >= 2:
            selected, elapsed = [], 0
            for ex in shuffled[:SAFETY_NET_CAP]:
                if elapsed + ex.duration_seconds <= budget:
                    selected.append(ex)
                    elapsed += ex.duration_seconds

        if not selected:
            logger.info(f"No candidate fits a {budget}s budget, using fallback set")
            return self.fallback_exercises()
        return selected

    def generate(self, preferences: WorkoutPreferences) -> Workout:
        budget = target_duration(preferences)
        candidates = self.filter_exercises(preferences)
        if not candidates:
            logger.info(f"No catalog match for {preferences.to_dict()}, using fallback set")
        exercises = self.select_exercises(candidates, budget)
        workout = build_workout(exercises, preferences)
        logger.debug(
            f"Generated workout {workout.id}: {len(exercises)} exercises, "
            f"{workout.total_duration_seconds}s of {budget}s"
        )
        return workout

    def swap(self, workout: Workout, index: int) -> Optional[Workout]:
        """
        Replace the exercise at ``index`` with another matching one that keeps
        the workout inside its budget. Same body focus is preferred.
        Returns a new Workout, or None if no swap is available.
        """
        current = workout.exercises[index]
        used_ids = {e.id for e in workout.exercises}
        room = target_duration(workout.preferences) - (
            workout.total_duration_seconds - current.duration_seconds
        )

        candidates = [
            e for e in self.filter_exercises(workout.preferences)
            if e.id not in used_ids and e.duration_seconds <= room
        ]
        same_focus = [e for e in candidates if e.body_focus == current.body_focus]
        pool = same_focus or candidates
        if not pool:
            return None

        exercises = list(workout.exercises)
        exercises[index] = self.rng.choice(pool)
        return build_workout(exercises, workout.preferences, workout.source, workout.title)


def generate_workout(preferences: WorkoutPreferences, rng: Optional[random.Random] = None) -> Workout:
    """Build a workout from the default catalog."""
    return WorkoutGenerator(rng=rng).generate(preferences)


def workout_to_json(workout: Workout) -> str:
    """Serialize a workout for Google Sheets storage."""
    return json.dumps(workout.to_dict())


def json_to_workout(json_str: str) -> Workout:
    """Deserialize a workout from Google Sheets."""
    return Workout.from_dict(json.loads(json_str))
