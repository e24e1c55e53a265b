"""
Copy-on-write updates of the variable pool and the session that holds it.

Nothing here mutates its inputs: callers holding the previous pool or
session keep seeing exactly what they saw before the commit.
"""
from __future__ import annotations

from typing import Any

import structlog

from models.schemas import SessionState, Variable

logger = structlog.get_logger()


def commit_variable(variables: list[Variable], variable_id: str, value: Any) -> list[Variable]:
    """
    Return a pool where the variable `variable_id` holds `value`.
    Unknown ids leave the pool unchanged; other variables are shared, in order.
    """
    index = next((i for i, v in enumerate(variables) if v.id == variable_id), None)
    if index is None:
        logger.debug("commit_variable_unknown_id", variable_id=variable_id)
        return variables
    new_pool = list(variables)
    new_pool[index] = variables[index].model_copy(update={"value": value})
    return new_pool


def update_variables_in_session(state: SessionState, new_variables: list[Variable]) -> SessionState:
    """Return a new session whose running flow has `new_variables` merged into its pool."""
    pool = state.variables
    for variable in new_variables:
        pool = commit_variable(pool, variable.id, variable.value)

    current = state.current
    new_current = current.model_copy(update={
        "typebot": current.typebot.model_copy(update={"variables": pool}),
    })
    return state.model_copy(update={
        "typebots_queue": [new_current, *state.typebots_queue[1:]],
    })
