"""Tests for turning set-variable descriptors into expression text."""
import pytest

from set_variable.expressions import HANDLERS, MOMENT_OF_THE_DAY_SCRIPT, ExpressionSynthesizer
from set_variable.models import MapListItemParams, SetVariableOptions, SetVariableType
from set_variable.time_resolver import InvalidTimeZone


@pytest.fixture
def synthesizer(fixed_clock, id_factory) -> ExpressionSynthesizer:
    return ExpressionSynthesizer(clock=fixed_clock, id_factory=id_factory)


def options(type_, **kwargs) -> SetVariableOptions:
    return SetVariableOptions(variable_id="vresult", type=type_, **kwargs)


class TestHandlerTable:
    def test_every_type_has_a_handler(self):
        assert set(HANDLERS) == set(SetVariableType)

    def test_every_handler_exists(self, synthesizer):
        for name in HANDLERS.values():
            assert callable(getattr(synthesizer, name))


class TestContact:
    def test_contact_name_on_whatsapp(self, synthesizer, whatsapp_state):
        assert synthesizer.synthesize(whatsapp_state, options(SetVariableType.CONTACT_NAME)) == '"Grace Hopper"'

    def test_contact_name_on_web_is_unresolvable(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.CONTACT_NAME)) is None

    def test_phone_number_on_whatsapp(self, synthesizer, whatsapp_state):
        assert synthesizer.synthesize(whatsapp_state, options(SetVariableType.PHONE_NUMBER)) == '"+33612345678"'

    def test_phone_number_on_web_is_unresolvable(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.PHONE_NUMBER)) is None

    def test_quotes_in_contact_name_are_escaped(self, synthesizer, whatsapp_state):
        state = whatsapp_state.model_copy(deep=True)
        state.whats_app.contact.name = 'Ada "the Countess"'
        assert synthesizer.synthesize(state, options(SetVariableType.CONTACT_NAME)) == '"Ada \\"the Countess\\""'


class TestClock:
    def test_now_in_utc(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.NOW)) == '"2024-03-01T23:15:30Z"'

    def test_now_in_zone(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.NOW, time_zone="Asia/Kolkata"))
        assert result == '"2024-03-02T04:45:30+05:30"'

    def test_zone_from_variable(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.NOW, time_zone="{{Zone}}"))
        assert result == '"2024-03-02T04:45:30+05:30"'

    def test_zone_from_empty_variable_is_utc(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.NOW, time_zone="{{Tags}}"))
        assert result == '"2024-03-01T23:15:30Z"'

    def test_today_matches_now(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.TODAY)) == '"2024-03-01T23:15:30Z"'

    def test_tomorrow(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.TOMORROW)) == '"2024-03-02T23:15:30Z"'

    def test_yesterday_crosses_leap_day(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.YESTERDAY)) == '"2024-02-29T23:15:30Z"'

    def test_tomorrow_in_zone(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.TOMORROW, time_zone="America/New_York"))
        assert result == '"2024-03-02T18:15:30-05:00"'

    def test_invalid_zone_raises(self, synthesizer, web_state):
        with pytest.raises(InvalidTimeZone):
            synthesizer.synthesize(web_state, options(SetVariableType.NOW, time_zone="Nowhere/Land"))


class TestIdentifiers:
    def test_random_id_is_fresh_and_quoted(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.RANDOM_ID)) == '"id-1"'
        assert synthesizer.synthesize(web_state, options(SetVariableType.RANDOM_ID)) == '"id-2"'

    def test_result_id_uses_queued_result(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.RESULT_ID)) == '"res-42"'
        assert synthesizer.synthesize(web_state, options(SetVariableType.USER_ID)) == '"res-42"'

    def test_result_id_falls_back_to_fresh_id(self, synthesizer, whatsapp_state):
        assert synthesizer.synthesize(whatsapp_state, options(SetVariableType.RESULT_ID)) == '"id-1"'

    def test_environment_name(self, synthesizer, web_state, whatsapp_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.ENVIRONMENT_NAME)) == '"web"'
        assert synthesizer.synthesize(whatsapp_state, options(SetVariableType.ENVIRONMENT_NAME)) == '"whatsapp"'


class TestScripts:
    def test_map_item_with_same_index(self, synthesizer, web_state):
        params = MapListItemParams(
            base_item_variable_id="vcolor",
            base_list_variable_id="vcolors",
            target_list_variable_id="vprices",
        )
        result = synthesizer.synthesize(
            web_state, options(SetVariableType.MAP_ITEM_WITH_SAME_INDEX, map_list_item_params=params)
        )
        assert result == "const itemIndex = vcolors.indexOf(vcolor)\nreturn vprices.at(itemIndex)"

    def test_map_item_without_params_is_unresolvable(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.MAP_ITEM_WITH_SAME_INDEX)) is None
        partial = MapListItemParams(base_item_variable_id="vcolor")
        result = synthesizer.synthesize(
            web_state, options(SetVariableType.MAP_ITEM_WITH_SAME_INDEX, map_list_item_params=partial)
        )
        assert result is None

    def test_append_values(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.APPEND_VALUES, item="{{Color}}"))
        assert result.splitlines() == [
            "if(!{{Color}}) return vresult;",
            "if(!vresult) return [{{Color}}];",
            "if(!Array.isArray(vresult)) return [vresult, {{Color}}];",
            "return (vresult).concat({{Color}});",
        ]

    def test_append_without_item_is_unresolvable(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.APPEND_VALUES)) is None

    def test_moment_of_the_day_keeps_branch_order(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.MOMENT_OF_THE_DAY))
        assert result == MOMENT_OF_THE_DAY_SCRIPT
        assert result.index("'evening'") < result.index("'night'")


class TestCustom:
    def test_empty_is_unresolvable(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.EMPTY)) is None

    def test_custom_returns_expression(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, options(SetVariableType.CUSTOM, expression_to_evaluate="{{Total}} * 2"))
        assert result == "{{Total}} * 2"

    def test_missing_type_is_custom(self, synthesizer, web_state):
        result = synthesizer.synthesize(web_state, SetVariableOptions(variable_id="vresult", expression_to_evaluate="1+1"))
        assert result == "1+1"

    def test_custom_without_expression_is_unresolvable(self, synthesizer, web_state):
        assert synthesizer.synthesize(web_state, options(SetVariableType.CUSTOM)) is None
        assert synthesizer.synthesize(web_state, options(SetVariableType.CUSTOM, expression_to_evaluate="")) is None
