"""Decides whether a synthesized expression runs on the server or on the user's client."""
from __future__ import annotations

from typing import Optional

from models.schemas import SessionState
from set_variable.models import ExecutionRoute, SetVariableOptions, SetVariableType


def route_execution(
    options: SetVariableOptions,
    expression: Optional[str],
    state: SessionState,
) -> ExecutionRoute:
    """
    Client evaluation is needed when the value depends on where the user is:
    custom expressions flagged for client execution, and the moment of the
    day (client wall clock). Messaging sessions have no client runtime, so
    they always evaluate on the server, as do empty expressions.
    """
    if not expression or state.is_messaging_channel:
        return ExecutionRoute.SERVER_EVALUATE
    if options.is_custom and options.is_executed_on_client:
        return ExecutionRoute.CLIENT_EVALUATE
    if options.type == SetVariableType.MOMENT_OF_THE_DAY:
        return ExecutionRoute.CLIENT_EVALUATE
    return ExecutionRoute.SERVER_EVALUATE
