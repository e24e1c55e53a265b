"""
Template substitution — replaces {{Variable name}} placeholders in text.

Two placeholder spellings are recognised:
  {{name}}      plain placeholder
  ${{{name}}}   placeholder inside a JS template literal (the `$` is kept)

With field_to_parse="id" the placeholder is replaced by the variable id,
which is how expressions are turned into code that references variables
as free identifiers.
"""
from __future__ import annotations

import json
import re
from typing import Any, Optional

from models.schemas import Variable

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}|(\$)\{\{([^{}]+)\}\}")


def _find_variable(variables: list[Variable], name: str, field_to_parse: str) -> Optional[Variable]:
    for variable in variables:
        if variable.name != name:
            continue
        if field_to_parse == "id" or variable.value is not None:
            return variable
    return None


def safe_stringify(value: Any) -> str:
    """Render a value for text: strings as-is, everything else as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def parse_variables(variables: list[Variable], text: Optional[str], field_to_parse: str = "value") -> str:
    """Substitute every placeholder in `text`. Unknown or valueless variables become ""."""
    if not text:
        return ""

    def replacer(match: re.Match) -> str:
        name_in_braces, dollar, name_in_template = match.groups()
        dollar = dollar or ""
        name = (name_in_braces if name_in_braces is not None else name_in_template)
        variable = _find_variable(variables, name, field_to_parse)
        if variable is None:
            return dollar
        if field_to_parse == "id":
            return dollar + variable.id
        return dollar + safe_stringify(variable.value)

    return PLACEHOLDER_PATTERN.sub(replacer, text)


def extract_variables_from_text(variables: list[Variable], text: Optional[str]) -> list[Variable]:
    """Variables referenced by placeholders in `text`, in order of first appearance."""
    if not text:
        return []
    found: list[Variable] = []
    for match in PLACEHOLDER_PATTERN.finditer(text):
        name = match.group(1) if match.group(1) is not None else match.group(3)
        variable = next((v for v in variables if v.name == name), None)
        if variable is not None and variable not in found:
            found.append(variable)
    return found
