"""Builds the script a client runs for a client-side setVariable action."""
from __future__ import annotations

from models.schemas import Variable
from set_variable.models import ScriptArg, ScriptToExecute
from variables.parse import extract_variables_from_text, parse_variables
from variables.value_types import parse_guessed_value_type


def parse_script_to_execute_client_side_action(variables: list[Variable], expression: str) -> ScriptToExecute:
    """
    Placeholders become variable ids in `content`; `args` binds each
    referenced id to its current (type-guessed) value.
    """
    content = parse_variables(variables, expression, field_to_parse="id")
    args = [
        ScriptArg(id=variable.id, value=parse_guessed_value_type(variable.value))
        for variable in extract_variables_from_text(variables, expression)
    ]
    return ScriptToExecute(content=content, args=args)
