"""ID helpers."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate a random UUID4 string usable as a vector point id."""
    return str(uuid.uuid4())
