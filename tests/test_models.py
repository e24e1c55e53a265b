"""Tests for data models and wire naming."""
import pytest
from pydantic import ValidationError

from models.schemas import SessionState, Variable
from set_variable.models import SetVariableBlock, SetVariableOptions, SetVariableType


class TestVariable:
    def test_camel_and_snake_input(self):
        assert Variable.model_validate({"id": "v1", "name": "A", "value": 1}).value == 1

    def test_frozen(self):
        variable = Variable(id="v1", name="A", value=1)
        with pytest.raises(ValidationError):
            variable.value = 2

    def test_value_defaults_to_none(self):
        assert Variable(id="v1", name="A").value is None


class TestSessionState:
    def test_default_queue_has_one_flow(self):
        state = SessionState()
        assert state.variables == []
        assert state.current.result_id is None
        assert not state.is_messaging_channel

    def test_parses_builder_payload(self):
        state = SessionState.model_validate({
            "typebotsQueue": [{"typebot": {"id": "tb", "variables": [{"id": "v", "name": "V"}]}, "resultId": "r"}],
            "whatsApp": {"contact": {"name": "Ada", "phoneNumber": "+1"}},
        })
        assert state.current.result_id == "r"
        assert state.variables[0].id == "v"
        assert state.is_messaging_channel
        assert state.whats_app.contact.phone_number == "+1"

    def test_empty_queue_is_rejected(self):
        with pytest.raises(ValidationError):
            SessionState.model_validate({"typebotsQueue": []})


class TestSetVariableOptions:
    def test_type_from_builder_label(self):
        options = SetVariableOptions.model_validate({"variableId": "v", "type": "Map item with same index"})
        assert options.type == SetVariableType.MAP_ITEM_WITH_SAME_INDEX
        assert not options.is_custom

    def test_missing_type_is_custom(self):
        assert SetVariableOptions(variable_id="v").is_custom
        assert SetVariableOptions(variable_id="v", type=SetVariableType.CUSTOM).is_custom

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            SetVariableOptions.model_validate({"type": "Weather"})

    def test_dump_uses_camel_case(self):
        block = SetVariableBlock(id="b", outgoing_edge_id="e", options=SetVariableOptions(variable_id="v"))
        dumped = block.model_dump(by_alias=True, exclude_none=True)
        assert dumped["outgoingEdgeId"] == "e"
        assert dumped["options"]["variableId"] == "v"
        assert dumped["options"]["isExecutedOnClient"] is False
