"""
Core data models for the FlowVars engine.
These are the universal types shared across all modules.

Wire payloads use camelCase (as persisted by the flow builder); Python code
uses snake_case. Both spellings are accepted on input.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ──────────────────────────────────────────────────────────────
#  Variable — one live binding in a flow-execution session
# ──────────────────────────────────────────────────────────────

class Variable(CamelModel):
    """
    A named variable of a flow. Identity is `id`; `name` is what authors
    write inside {{ }} placeholders. Frozen so that a pool snapshot can be
    shared between session states without anyone mutating it afterwards.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    value: Any = None                           # scalar | list | object | None


# ──────────────────────────────────────────────────────────────
#  Messaging channel marker
# ──────────────────────────────────────────────────────────────

class WhatsAppContact(CamelModel):
    name: str = ""
    phone_number: str = ""


class WhatsAppContext(CamelModel):
    """Present only on sessions running over WhatsApp (no client-side scripting)."""
    contact: WhatsAppContact = Field(default_factory=WhatsAppContact)


# ──────────────────────────────────────────────────────────────
#  Session State — read-only snapshot handed to block executors
# ──────────────────────────────────────────────────────────────

class TypebotInSession(CamelModel):
    id: str = ""
    variables: list[Variable] = []


class QueuedTypebot(CamelModel):
    """One flow in the execution queue. The head of the queue is the running one."""
    typebot: TypebotInSession = Field(default_factory=TypebotInSession)
    result_id: Optional[str] = None


class SessionState(CamelModel):
    """
    Snapshot of a flow-execution session. Executors never mutate it; they
    return a new SessionState when something changes. The queue is never
    empty: its head is the running flow.
    """
    typebots_queue: list[QueuedTypebot] = Field(default_factory=lambda: [QueuedTypebot()], min_length=1)
    whats_app: Optional[WhatsAppContext] = None
    metadata: dict[str, Any] = {}

    @property
    def current(self) -> QueuedTypebot:
        return self.typebots_queue[0]

    @property
    def variables(self) -> list[Variable]:
        return self.current.typebot.variables

    @property
    def is_messaging_channel(self) -> bool:
        return self.whats_app is not None
