"""Errors raised while parsing or running sandboxed expressions."""
from __future__ import annotations

from typing import Any


class SandboxError(Exception):
    """Base class for every failure inside the sandbox."""


class SandboxSyntaxError(SandboxError):
    def __init__(self, message: str, position: int = -1):
        self.position = position
        if position >= 0:
            message = f"{message} (at offset {position})"
        super().__init__(message)


class SandboxRuntimeError(SandboxError):
    """A JS-style runtime error: kind is TypeError, ReferenceError, RangeError, ..."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"{kind}: {message}")


class ThrownValue(SandboxRuntimeError):
    """A value thrown by the script itself with `throw`."""

    def __init__(self, value: Any, text: str):
        self.value = value
        super().__init__("Uncaught", text)


class SandboxTimeout(SandboxError):
    """The script ran past its wall-clock or step budget."""


class SandboxLimitExceeded(SandboxError):
    """The script exceeded a size or depth limit."""
