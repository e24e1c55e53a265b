"""
Set Variable Block Models.

A SetVariableBlock carries a descriptor (SetVariableOptions) saying where the
new value of a variable comes from: a clock reading, a generated id, a list
operation, or a free-form expression written by the flow author. The
executor turns the descriptor into expression text, decides where that text
runs (server sandbox or the user's client) and commits the result.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import Field

from models.schemas import CamelModel, SessionState


# ──────────────────────────────────────────────────────────────
#  Descriptor
# ──────────────────────────────────────────────────────────────

class SetVariableType(str, Enum):
    """Where the new value comes from. Values are the labels the flow builder persists."""
    CONTACT_NAME = "Contact name"
    PHONE_NUMBER = "Phone number"
    NOW = "Now"
    TODAY = "Today"
    TOMORROW = "Tomorrow"
    YESTERDAY = "Yesterday"
    RANDOM_ID = "Random ID"
    RESULT_ID = "Result ID"
    USER_ID = "User ID"
    MAP_ITEM_WITH_SAME_INDEX = "Map item with same index"
    APPEND_VALUES = "Append value(s)"
    EMPTY = "Empty"
    MOMENT_OF_THE_DAY = "Moment of the day"
    ENVIRONMENT_NAME = "Environment name"
    CUSTOM = "Custom"


class MapListItemParams(CamelModel):
    base_item_variable_id: Optional[str] = None
    base_list_variable_id: Optional[str] = None
    target_list_variable_id: Optional[str] = None


class SetVariableOptions(CamelModel):
    """
    Descriptor of a set-variable block.

    Only the fields relevant to `type` are read:
      Custom / None:            expression_to_evaluate, is_executed_on_client
      Now/Today/Tomorrow/Yesterday: time_zone (may contain {{var}} placeholders)
      Map item with same index: map_list_item_params
      Append value(s):          item (expression, usually a {{var}} placeholder)
    """
    variable_id: Optional[str] = None
    type: Optional[SetVariableType] = None
    expression_to_evaluate: Optional[str] = None
    is_executed_on_client: bool = False
    time_zone: Optional[str] = None
    map_list_item_params: Optional[MapListItemParams] = None
    item: Optional[str] = None

    @property
    def is_custom(self) -> bool:
        return self.type is None or self.type == SetVariableType.CUSTOM


class SetVariableBlock(CamelModel):
    id: str
    outgoing_edge_id: Optional[str] = None
    options: Optional[SetVariableOptions] = None


# ──────────────────────────────────────────────────────────────
#  Routing
# ──────────────────────────────────────────────────────────────

class ExecutionRoute(str, Enum):
    SERVER_EVALUATE = "server_evaluate"
    CLIENT_EVALUATE = "client_evaluate"


# ──────────────────────────────────────────────────────────────
#  Client-side action — handed to the browser runtime
# ──────────────────────────────────────────────────────────────

class ScriptArg(CamelModel):
    id: str
    value: Any = None


class ScriptToExecute(CamelModel):
    """Standalone script for the client: `content` references variables by id, `args` binds them."""
    content: str
    args: list[ScriptArg] = []


class SetVariableClientAction(CamelModel):
    script_to_execute: ScriptToExecute


class ClientSideAction(CamelModel):
    type: str = "setVariable"
    set_variable: SetVariableClientAction
    expects_dedicated_reply: bool = True


# ──────────────────────────────────────────────────────────────
#  Execution Result
# ──────────────────────────────────────────────────────────────

class ExecuteLogicResponse(CamelModel):
    """Outcome of running one logic block."""
    outgoing_edge_id: Optional[str] = None
    new_session_state: Optional[SessionState] = None
    client_side_actions: Optional[list[ClientSideAction]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
