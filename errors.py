"""
errors.py — Studio exception types.
"""


class StudioError(Exception):
    """Base class for every error the studio raises on purpose."""


class InvalidPreferences(StudioError, ValueError):
    """Questionnaire input outside the allowed values."""


class GenerationFailure(StudioError):
    """The AI workout service was unreachable or replied with unusable data."""


class PersistenceFailure(StudioError):
    """A save or load against the workout store did not go through."""
