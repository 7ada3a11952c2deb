"""Pure progression and grading engine: no Flask, no database."""

from .attempts import can_attempt, present, shuffle
from .errors import ConfigurationError, ErrorKind, LearnPathError, PersistenceFailure, ReasonCode
from .grading import grade
from .prerequisites import PrerequisiteResolver
from .progress import aggregate

__all__ = [
    "aggregate",
    "can_attempt",
    "ConfigurationError",
    "ErrorKind",
    "grade",
    "LearnPathError",
    "PersistenceFailure",
    "PrerequisiteResolver",
    "present",
    "ReasonCode",
    "shuffle",
]
