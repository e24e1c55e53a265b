"""
Server-side evaluation of set-variable expressions.

Expressions reference variables as {{Name}} placeholders. Before running,
placeholders are replaced by variable ids, and every id is bound in the
sandbox to the variable's value, so `{{Total}} * 2` runs as `v_total * 2`.
If the script cannot run, the expression is treated as a text template.
"""
from __future__ import annotations

from typing import Any

import structlog

from models.schemas import Variable
from sandbox import Sandbox, SandboxError
from variables.parse import parse_variables
from variables.value_types import is_leading_zero_number, parse_guessed_value_type

logger = structlog.get_logger()


def is_single_placeholder(expression: str) -> bool:
    return expression.startswith("{{") and expression.endswith("}}") and expression.count("{{") == 1


def wrap_in_function(expression: str) -> str:
    body = expression if "return " in expression else f"return {expression}"
    return f"(function() {{{body}}})()"


class SetVariableEvaluator:
    def __init__(self, sandbox: Sandbox = None):
        self.sandbox = sandbox or Sandbox()

    def evaluate(self, expression: str, variables: list[Variable]) -> Any:
        if is_single_placeholder(expression):
            return parse_variables(variables, expression)
        # "0123" would otherwise run as a number (or a syntax error)
        if is_leading_zero_number(expression):
            return expression

        script = parse_variables(variables, wrap_in_function(expression), field_to_parse="id")
        bindings = {variable.id: parse_guessed_value_type(variable.value) for variable in variables}
        try:
            return self.sandbox.run(script, bindings)
        except SandboxError as e:
            logger.info("sandbox_execution_failed", error=str(e), error_type=type(e).__name__)
            return parse_variables(variables, expression)
