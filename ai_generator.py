"""
ai_generator.py — AI Coach Workouts
Asks Claude for a personalised plan and falls back to the rule-based
generator whenever the reply can't be used.
"""

import json
import random
from dataclasses import dataclass
from typing import Any, Optional

import anthropic
from loguru import logger

from errors import GenerationFailure, InvalidPreferences
from gym_logic import (
    TIME_OPTIONS, Exercise, Workout, WorkoutGenerator, WorkoutPreferences, build_workout,
)
from settings import DEFAULT_AI_MODEL

FOCUS_AREAS = ["upper-body", "lower-body", "core", "full-body", "cardio", "functional", "mobility"]
INTENSITIES = ["light", "moderate", "intense"]
SPACE_SIZES = ["small", "big"]
MIN_AI_MINUTES, MAX_AI_MINUTES = 5, 60

SPACE_MAP = {"small": "tight", "big": "normal"}
INTENSITY_MAP = {"light": "low", "moderate": "medium", "intense": "high"}
DIFFICULTY_MAP = {"light": 1, "moderate": 2, "intense": 3}
FOCUS_MAP = {
    "upper-body": "upper",
    "lower-body": "lower",
    "core": "core",
    "full-body": "core",
    "cardio": "cardio",
    "functional": "core",
    "mobility": "flexibility",
}


@dataclass(frozen=True)
class AIWorkoutRequest:
    space_size: str = "big"          # "small", "big"
    has_weights: bool = False
    intensity: str = "moderate"      # "light", "moderate", "intense"
    duration_minutes: int = 15
    focus_area: str = "full-body"
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "spaceSize": self.space_size,
            "hasWeights": self.has_weights,
            "intensity": self.intensity,
            "durationMinutes": self.duration_minutes,
            "focusArea": self.focus_area,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AIWorkoutRequest":
        return cls(
            space_size=data.get("spaceSize", "big"),
            has_weights=bool(data.get("hasWeights", False)),
            intensity=data.get("intensity", "moderate"),
            duration_minutes=int(data.get("durationMinutes", 15)),
            focus_area=data.get("focusArea", "full-body"),
            notes=data.get("notes", ""),
        )


def validate_ai_request(request: AIWorkoutRequest) -> AIWorkoutRequest:
    if request.space_size not in SPACE_SIZES:
        raise InvalidPreferences(f"Unknown space size: {request.space_size!r}")
    if request.intensity not in INTENSITIES:
        raise InvalidPreferences(f"Unknown intensity: {request.intensity!r}")
    if request.focus_area not in FOCUS_AREAS:
        raise InvalidPreferences(f"Unknown focus area: {request.focus_area!r}")
    if not MIN_AI_MINUTES <= request.duration_minutes <= MAX_AI_MINUTES:
        raise InvalidPreferences(
            f"Duration must be {MIN_AI_MINUTES}-{MAX_AI_MINUTES} minutes, got {request.duration_minutes}"
        )
    return request


def to_preferences(request: AIWorkoutRequest) -> WorkoutPreferences:
    """Map an AI request onto the local questionnaire's preferences."""
    fitting = [t for t in TIME_OPTIONS if t <= request.duration_minutes]
    return WorkoutPreferences(
        time_minutes=max(fitting) if fitting else min(TIME_OPTIONS),
        space_type=SPACE_MAP.get(request.space_size, "normal"),
        energy_level=INTENSITY_MAP.get(request.intensity, "medium"),
        equipment="chair" if request.has_weights else "none",
    )


def build_prompt(request: AIWorkoutRequest) -> str:
    space_hint = "(apartment/office)" if request.space_size == "small" else "(gym/large room)"
    return f"""Create a personalized {request.duration_minutes}-minute workout plan.

- Space: {request.space_size} space {space_hint}
- Equipment: {'Weights available' if request.has_weights else 'Bodyweight only'}
- Intensity: {request.intensity}
- Focus: {request.focus_area}
- Special notes: {request.notes or 'None'}

Structure it as warmup, main workout and cooldown. If the notes mention
injuries or limitations, avoid movements that could aggravate them.

Return ONLY a valid JSON object in this exact format:
{{
  "title": "Workout Name",
  "exercises": [
    {{
      "name": "Exercise Name",
      "duration": 45,
      "reps": null,
      "instructions": "Clear step-by-step instructions.",
      "formTips": ["Keep your core engaged", "Control the movement"],
      "category": "warmup",
      "restAfter": 15
    }}
  ],
  "totalDuration": {request.duration_minutes * 60},
  "estimatedCalories": 150
}}"""


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    return text.strip()


def _exercise_from_ai(entry: dict[str, Any], index: int, request: AIWorkoutRequest,
                      preferences: WorkoutPreferences) -> Exercise:
    duration = int(entry["duration"])
    if duration <= 0:
        raise ValueError(f"exercise {index + 1} has no positive duration")
    reps = entry.get("reps")
    return Exercise(
        id=f"{request.focus_area}-{index + 1}",
        name=str(entry["name"]),
        duration_seconds=duration,
        reps=int(reps) if isinstance(reps, (int, float)) and not isinstance(reps, bool) else None,
        difficulty=DIFFICULTY_MAP.get(request.intensity, 2),
        space_requirement="minimal" if preferences.space_type == "tight" else "normal",
        energy_level=preferences.energy_level,
        body_focus=FOCUS_MAP.get(request.focus_area, "core"),
        equipment=preferences.equipment,
        instructions=str(entry.get("instructions", "")),
        rest_after_seconds=max(0, int(entry.get("restAfter") or 0)),
        form_tips=tuple(str(t) for t in entry.get("formTips") or ()),
        category=str(entry.get("category", "")),
    )


def parse_ai_workout(text: str, request: AIWorkoutRequest) -> Workout:
    """Turn Claude's JSON reply into a Workout. Raises GenerationFailure on bad data."""
    try:
        data = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise GenerationFailure(f"Reply is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("exercises"), list):
        raise GenerationFailure("Reply has no exercise list")
    if not data["exercises"]:
        raise GenerationFailure("Reply has an empty exercise list")

    preferences = to_preferences(request)
    try:
        exercises = [
            _exercise_from_ai(entry, i, request, preferences)
            for i, entry in enumerate(data["exercises"])
        ]
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise GenerationFailure(f"Malformed exercise in reply: {e}") from e

    # Totals are derived from the exercises, not trusted from the reply
    return build_workout(exercises, preferences, source="ai", title=str(data.get("title", "")))


class AIWorkoutGenerator:
    """
    One attempt against the Anthropic API per request, no retries. Any
    failure is logged and answered with a locally generated workout.
    """

    def __init__(self, api_key: str = "", model: str = DEFAULT_AI_MODEL,
                 client: Optional[Any] = None, rng: Optional[random.Random] = None,
                 max_tokens: int = 2000):
        if client is None and api_key:
            client = anthropic.Anthropic(api_key=api_key)
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.local = WorkoutGenerator(rng=rng)

    def generate(self, request: AIWorkoutRequest) -> Workout:
        try:
            workout = self._generate_remote(request)
        except GenerationFailure as e:
            logger.warning(f"AI workout generation failed, using local generator: {e}")
            return self.fallback(request)
        logger.info(f"AI workout {workout.id} with {len(workout.exercises)} exercises")
        return workout

    def fallback(self, request: AIWorkoutRequest) -> Workout:
        workout = self.local.generate(to_preferences(request))
        return build_workout(workout.exercises, workout.preferences, source="fallback",
                             title=f"{request.focus_area.replace('-', ' ').title()} Workout")

    def _generate_remote(self, request: AIWorkoutRequest) -> Workout:
        if self.client is None:
            raise GenerationFailure("No Anthropic API key configured")
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": build_prompt(request)}],
            )
        except anthropic.AnthropicError as e:
            raise GenerationFailure(f"Anthropic request failed: {e}") from e

        text = next(
            (block.text for block in message.content if getattr(block, "type", "") == "text"),
            None,
        )
        if not text:
            raise GenerationFailure("No text content received from Claude")
        return parse_ai_workout(text, request)
