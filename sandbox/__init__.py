"""
Isolated interpreter for set-variable expressions (a JavaScript subset).
"""
from sandbox.engine import Sandbox
from sandbox.errors import (
    SandboxError,
    SandboxSyntaxError,
    SandboxRuntimeError,
    ThrownValue,
    SandboxTimeout,
    SandboxLimitExceeded,
)
from sandbox.fetch import HttpFetcher, JSResponse
