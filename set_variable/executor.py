"""
Set Variable Executor — runs one set-variable block against a session.

Flow:
  SetVariableExecutor.execute(state, block)
    → ExpressionSynthesizer: descriptor → expression text (or None)
    → route_execution: server or client?
        client → return a setVariable client-side action, session untouched
        server → SetVariableEvaluator runs the expression in the sandbox
               → commit the value copy-on-write into a new SessionState

The executor is stateless; the session snapshot passed in is never modified.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from config.settings import Settings, get_settings
from models.schemas import SessionState, Variable
from sandbox import HttpFetcher, Sandbox
from set_variable.client_script import parse_script_to_execute_client_side_action
from set_variable.evaluator import SetVariableEvaluator
from set_variable.expressions import ExpressionSynthesizer
from set_variable.models import (
    ClientSideAction,
    ExecuteLogicResponse,
    ExecutionRoute,
    SetVariableBlock,
    SetVariableClientAction,
    SetVariableOptions,
    SetVariableType,
)
from set_variable.routing import route_execution
from set_variable.time_resolver import InvalidTimeZone, validate_time_zone
from utils.ids import create_id
from variables.session import update_variables_in_session
from variables.value_types import parse_guessed_value_type

logger = structlog.get_logger()

CLOCK_TYPES = {
    SetVariableType.NOW,
    SetVariableType.TODAY,
    SetVariableType.TOMORROW,
    SetVariableType.YESTERDAY,
}


def _find_variable(variables: list[Variable], variable_id: str) -> Optional[Variable]:
    return next((v for v in variables if v.id == variable_id), None)


class SetVariableExecutor:
    """
    Dependencies (clock, id generator, HTTP fetcher) are injected so tests
    can pin time and ids; everything else comes from settings.
    """

    def __init__(
        self,
        settings: Settings = None,
        clock: Callable[[], datetime] = None,
        id_factory: Callable[[], str] = create_id,
        fetcher: Optional[HttpFetcher] = None,
    ):
        self.settings = settings or get_settings()
        self.synthesizer = ExpressionSynthesizer(clock=clock, id_factory=id_factory)
        self.evaluator = SetVariableEvaluator(Sandbox(self.settings.sandbox, clock=clock, fetcher=fetcher))

    # ══════════════════════════════════════════════════════════
    #  MAIN ENTRY POINT
    # ══════════════════════════════════════════════════════════

    def execute(self, state: SessionState, block: SetVariableBlock) -> ExecuteLogicResponse:
        """
        Run the block. Raises InvalidTimeZone when a clock source names a
        zone that does not exist.
        """
        options = block.options
        if options is None or not options.variable_id:
            return ExecuteLogicResponse(outgoing_edge_id=block.outgoing_edge_id)

        expression = self.synthesizer.synthesize(state, options)
        route = route_execution(options, expression, state)
        metadata = {"route": route.value}

        if route == ExecutionRoute.CLIENT_EVALUATE:
            script = parse_script_to_execute_client_side_action(state.variables, expression)
            logger.info(
                "set_variable_client_side",
                block_id=block.id,
                variable_id=options.variable_id,
                args=len(script.args),
            )
            action = ClientSideAction(set_variable=SetVariableClientAction(script_to_execute=script))
            return ExecuteLogicResponse(
                outgoing_edge_id=block.outgoing_edge_id,
                client_side_actions=[action],
                metadata=metadata,
            )

        target = _find_variable(state.variables, options.variable_id)
        if target is None:
            logger.warning("set_variable_target_missing", block_id=block.id, variable_id=options.variable_id)
            return ExecuteLogicResponse(outgoing_edge_id=block.outgoing_edge_id, metadata=metadata)

        if expression is None:
            logger.debug("set_variable_nothing_to_assign", block_id=block.id, type=options.type)
            return ExecuteLogicResponse(outgoing_edge_id=block.outgoing_edge_id, metadata=metadata)

        value = self.evaluator.evaluate(expression, state.variables)
        return self._commit(state, block, target, value, metadata)

    def apply_client_reply(self, state: SessionState, block: SetVariableBlock, reply: Any) -> ExecuteLogicResponse:
        """
        Commit the value a client reported after running the block's
        client-side action. Text replies are decoded as JSON when they
        parse, then type-guessed like any stored value.
        """
        options = block.options
        if options is None or not options.variable_id:
            return ExecuteLogicResponse(outgoing_edge_id=block.outgoing_edge_id)

        target = _find_variable(state.variables, options.variable_id)
        if target is None:
            logger.warning("set_variable_target_missing", block_id=block.id, variable_id=options.variable_id)
            return ExecuteLogicResponse(outgoing_edge_id=block.outgoing_edge_id)

        value = reply
        if isinstance(reply, str):
            try:
                value = json.loads(reply)
            except ValueError:
                value = reply
        value = parse_guessed_value_type(value)
        return self._commit(state, block, target, value, {"route": ExecutionRoute.CLIENT_EVALUATE.value})

    def _commit(
        self,
        state: SessionState,
        block: SetVariableBlock,
        target: Variable,
        value: Any,
        metadata: dict[str, Any],
    ) -> ExecuteLogicResponse:
        new_state = update_variables_in_session(state, [target.model_copy(update={"value": value})])
        logger.info("set_variable_committed", block_id=block.id, variable_id=target.id)
        return ExecuteLogicResponse(
            outgoing_edge_id=block.outgoing_edge_id,
            new_session_state=new_state,
            metadata=metadata,
        )


# ══════════════════════════════════════════════════════════
#  AUTHORING-TIME CHECKS
# ══════════════════════════════════════════════════════════

def validate_set_variable_options(options: SetVariableOptions) -> list[str]:
    """Problems a flow author should fix before publishing; empty when the block is fine."""
    errors: list[str] = []
    if not options.variable_id:
        errors.append("variableId is required")

    if options.type in CLOCK_TYPES and options.time_zone and "{{" not in options.time_zone:
        try:
            validate_time_zone(options.time_zone)
        except InvalidTimeZone as e:
            errors.append(str(e))

    if options.type == SetVariableType.MAP_ITEM_WITH_SAME_INDEX:
        params = options.map_list_item_params
        if params is None or not (
            params.base_item_variable_id and params.base_list_variable_id and params.target_list_variable_id
        ):
            errors.append("Map item with same index needs base item, base list and target list variables")

    if options.type == SetVariableType.APPEND_VALUES and not options.item:
        errors.append("Append value(s) needs an item to append")

    if options.is_custom and options.is_executed_on_client and not options.expression_to_evaluate:
        errors.append("Client-side execution needs an expression")

    return errors


_default_executor: Optional[SetVariableExecutor] = None


def execute_set_variable(state: SessionState, block: SetVariableBlock) -> ExecuteLogicResponse:
    """Run a block with an executor built from the current settings."""
    global _default_executor
    if _default_executor is None:
        _default_executor = SetVariableExecutor()
    return _default_executor.execute(state, block)
