from ..constants import Role

TAKE_QUIZ = "take_quiz"
TRACK_PROGRESS = "track_progress"
VIEW_CONTENT = "view_content"
AUTHOR_CONTENT = "author_content"
PREVIEW_LOCKED = "preview_locked"

_PERMISSIONS = {
    Role.STUDENT: frozenset({TAKE_QUIZ, TRACK_PROGRESS, VIEW_CONTENT}),
    Role.MANAGER: frozenset({VIEW_CONTENT, AUTHOR_CONTENT, PREVIEW_LOCKED}),
    Role.ADMIN: frozenset({VIEW_CONTENT, AUTHOR_CONTENT, PREVIEW_LOCKED}),
}


def roles_for(action: str) -> tuple:
    return tuple(r.value for r, actions in _PERMISSIONS.items() if action in actions)


def is_permitted(role, action: str) -> bool:
    """Single authorization predicate shared by the decorators and the engine."""
    try:
        role = Role(role)
    except ValueError:
        return False
    return action in _PERMISSIONS.get(role, frozenset())
