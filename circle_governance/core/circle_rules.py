"""Circle Rules: pure normalization of user-supplied circle fields.

Invariants:
    - Circle names are trimmed and must be 1-100 characters
    - Blank descriptions are stored as None
"""

from circle_governance.core.errors import ValidationError

CIRCLE_NAME_MAX_LENGTH = 100


def normalize_circle_name(name: str | None) -> str:
    """Trim and validate a circle name."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name is required", "name")
    name = name.strip()
    if len(name) > CIRCLE_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be {CIRCLE_NAME_MAX_LENGTH} characters or less", "name",
        )
    return name


def normalize_description(description: str | None) -> str | None:
    if description is None:
        return None
    return description.strip() or None
