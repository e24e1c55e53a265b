"""
Expression Synthesizer — turns a set-variable descriptor into expression text.

The text is what the evaluator (or the client) runs to obtain the new value.
`None` means "nothing to assign": the source is Empty, or the session does
not carry what the source asks for (no WhatsApp contact, no expression).

Literal values (names, phone numbers, ids, timestamps) are emitted as quoted
string literals so they evaluate to themselves.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from models.schemas import SessionState
from set_variable.models import SetVariableOptions, SetVariableType
from set_variable.time_resolver import resolve_instant
from utils.ids import create_id
from variables.parse import parse_variables

logger = structlog.get_logger()

ONE_DAY = timedelta(milliseconds=86_400_000)

MOMENT_OF_THE_DAY_SCRIPT = """const now = new Date()
if(now.getHours() < 12) return 'morning'
if(now.getHours() >= 12 && now.getHours() < 18) return 'afternoon'
if(now.getHours() >= 18) return 'evening'
if(now.getHours() >= 22 || now.getHours() < 6) return 'night'"""


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExpressionSynthesizer:
    """One handler per SetVariableType; see HANDLERS below."""

    def __init__(
        self,
        clock: Callable[[], datetime] = None,
        id_factory: Callable[[], str] = create_id,
    ):
        self.clock = clock or _utc_now
        self.id_factory = id_factory

    def synthesize(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        kind = options.type or SetVariableType.CUSTOM
        handler = getattr(self, HANDLERS[kind])
        expression = handler(state, options)
        logger.debug("expression_synthesized", type=kind.value, resolved=expression is not None)
        return expression

    # ── Messaging contact ─────────────────────────────────────

    def _contact_name(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        if state.whats_app is None or not state.whats_app.contact.name:
            return None
        return _quote(state.whats_app.contact.name)

    def _phone_number(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        if state.whats_app is None or not state.whats_app.contact.phone_number:
            return None
        return _quote(state.whats_app.contact.phone_number)

    # ── Clock ─────────────────────────────────────────────────

    def _time_zone(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        zone = parse_variables(state.variables, options.time_zone).strip()
        return zone or None

    def _instant(self, state: SessionState, options: SetVariableOptions, shift: timedelta) -> str:
        return _quote(resolve_instant(self.clock() + shift, self._time_zone(state, options)))

    def _now(self, state: SessionState, options: SetVariableOptions) -> str:
        return self._instant(state, options, timedelta(0))

    def _tomorrow(self, state: SessionState, options: SetVariableOptions) -> str:
        return self._instant(state, options, ONE_DAY)

    def _yesterday(self, state: SessionState, options: SetVariableOptions) -> str:
        return self._instant(state, options, -ONE_DAY)

    # ── Identifiers ───────────────────────────────────────────

    def _random_id(self, state: SessionState, options: SetVariableOptions) -> str:
        return _quote(self.id_factory())

    def _result_id(self, state: SessionState, options: SetVariableOptions) -> str:
        return _quote(state.current.result_id or self.id_factory())

    def _environment_name(self, state: SessionState, options: SetVariableOptions) -> str:
        return _quote("whatsapp" if state.is_messaging_channel else "web")

    # ── List scripts ──────────────────────────────────────────

    def _map_item_with_same_index(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        params = options.map_list_item_params
        if params is None or not (
            params.base_list_variable_id and params.base_item_variable_id and params.target_list_variable_id
        ):
            return None
        return (
            f"const itemIndex = {params.base_list_variable_id}.indexOf({params.base_item_variable_id})\n"
            f"return {params.target_list_variable_id}.at(itemIndex)"
        )

    def _append_values(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        item, target = options.item, options.variable_id
        if not item or not target:
            return None
        return (
            f"if(!{item}) return {target};\n"
            f"if(!{target}) return [{item}];\n"
            f"if(!Array.isArray({target})) return [{target}, {item}];\n"
            f"return ({target}).concat({item});"
        )

    def _moment_of_the_day(self, state: SessionState, options: SetVariableOptions) -> str:
        return MOMENT_OF_THE_DAY_SCRIPT

    # ── Others ────────────────────────────────────────────────

    def _empty(self, state: SessionState, options: SetVariableOptions) -> None:
        return None

    def _custom(self, state: SessionState, options: SetVariableOptions) -> Optional[str]:
        return options.expression_to_evaluate or None


HANDLERS: dict[SetVariableType, str] = {
    SetVariableType.CONTACT_NAME: "_contact_name",
    SetVariableType.PHONE_NUMBER: "_phone_number",
    SetVariableType.NOW: "_now",
    SetVariableType.TODAY: "_now",
    SetVariableType.TOMORROW: "_tomorrow",
    SetVariableType.YESTERDAY: "_yesterday",
    SetVariableType.RANDOM_ID: "_random_id",
    SetVariableType.RESULT_ID: "_result_id",
    SetVariableType.USER_ID: "_result_id",
    SetVariableType.MAP_ITEM_WITH_SAME_INDEX: "_map_item_with_same_index",
    SetVariableType.APPEND_VALUES: "_append_values",
    SetVariableType.EMPTY: "_empty",
    SetVariableType.MOMENT_OF_THE_DAY: "_moment_of_the_day",
    SetVariableType.ENVIRONMENT_NAME: "_environment_name",
    SetVariableType.CUSTOM: "_custom",
}

_unhandled = set(SetVariableType) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"No expression handler for: {sorted(t.value for t in _unhandled)}")
