"""Unique id generation."""
from __future__ import annotations

import uuid


def create_id() -> str:
    return str(uuid.uuid4())
