"""Shared test fixtures for FlowVars."""
import itertools
from datetime import datetime, timezone

import pytest

from config.settings import SandboxConfig, Settings
from models.schemas import (
    QueuedTypebot, SessionState, TypebotInSession, Variable,
    WhatsAppContact, WhatsAppContext,
)
from sandbox import Sandbox
from set_variable.executor import SetVariableExecutor

FIXED_NOW = datetime(2024, 3, 1, 23, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock():
    """Always 2024-03-01 23:15:30 UTC."""
    return lambda: FIXED_NOW


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def sandbox_config() -> SandboxConfig:
    return SandboxConfig(local_timezone="UTC", allow_fetch=False)


@pytest.fixture
def settings(sandbox_config) -> Settings:
    return Settings(app_name="FlowVars-test", sandbox=sandbox_config)


@pytest.fixture
def sandbox(sandbox_config, fixed_clock) -> Sandbox:
    return Sandbox(sandbox_config, clock=fixed_clock)


@pytest.fixture
def variables() -> list[Variable]:
    """A realistic pool: a lead-capture flow midway through."""
    return [
        Variable(id="vname", name="Name", value="Ada"),
        Variable(id="vtotal", name="Total", value="40"),
        Variable(id="vcolors", name="Colors", value=["red", "green", "blue"]),
        Variable(id="vcolor", name="Color", value="green"),
        Variable(id="vprices", name="Prices", value=["10", "20", "30"]),
        Variable(id="vtags", name="Tags", value=None),
        Variable(id="vcode", name="Code", value="0612"),
        Variable(id="vtz", name="Zone", value="Asia/Kolkata"),
        Variable(id="vresult", name="Result"),
    ]


@pytest.fixture
def web_state(variables) -> SessionState:
    return SessionState(typebots_queue=[
        QueuedTypebot(typebot=TypebotInSession(id="tb1", variables=variables), result_id="res-42"),
    ])


@pytest.fixture
def whatsapp_state(variables) -> SessionState:
    return SessionState(
        typebots_queue=[QueuedTypebot(typebot=TypebotInSession(id="tb1", variables=variables))],
        whats_app=WhatsAppContext(contact=WhatsAppContact(name="Grace Hopper", phone_number="+33612345678")),
    )


@pytest.fixture
def executor(settings, fixed_clock, id_factory) -> SetVariableExecutor:
    return SetVariableExecutor(settings, clock=fixed_clock, id_factory=id_factory)
