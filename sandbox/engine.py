"""
Sandbox entry point: parse a script and run it in a fresh interpreter.

    sandbox = Sandbox(get_settings().sandbox)
    sandbox.run("(function() { return v1 + 1 })()", {"v1": 41})   # -> 42

Bindings are copied in and the result is copied out as plain Python, so a
script can neither mutate the caller's data nor hand back live references.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from config.settings import SandboxConfig, get_settings
from sandbox.errors import SandboxLimitExceeded
from sandbox.fetch import HttpFetcher
from sandbox.interpreter import Interpreter, Limits
from sandbox.parser import parse
from sandbox.runtime import from_python, to_python
from utils.timezones import load_zone

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Sandbox:
    def __init__(
        self,
        config: SandboxConfig = None,
        clock: Callable[[], datetime] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        self.config = config or get_settings().sandbox
        self.clock = clock or _utc_now
        self.local_tz = load_zone(self.config.local_timezone) if self.config.local_timezone else None
        if fetcher is None and self.config.allow_fetch:
            fetcher = HttpFetcher(
                timeout=self.config.fetch_timeout_seconds,
                retries=self.config.fetch_retries,
            )
        self.fetcher = fetcher if self.config.allow_fetch else None
        self.limits = Limits(
            timeout_seconds=self.config.timeout_seconds,
            max_steps=self.config.max_steps,
            max_call_depth=self.config.max_call_depth,
            max_string_length=self.config.max_string_length,
            max_array_length=self.config.max_array_length,
        )

    def run(self, source: str, bindings: dict[str, Any] = None) -> Any:
        """
        Run `source` with `bindings` as global variables and return the value
        of its last top-level expression.

        Raises a SandboxError subclass on syntax errors, runtime errors,
        thrown values and exhausted budgets.
        """
        try:
            program = parse(source)
            interpreter = Interpreter(self.limits, self.clock, self.local_tz, self.fetcher)
            for name, value in (bindings or {}).items():
                interpreter.global_scope.vars[name] = from_python(value)
            result = interpreter.run(program)
        except RecursionError:
            raise SandboxLimitExceeded("Maximum call stack size exceeded")
        return to_python(result)
