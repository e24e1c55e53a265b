"""Tests for the REST surface, using camelCase payloads as the flow builder sends them."""
import pytest
from fastapi.testclient import TestClient

import api.main as main


@pytest.fixture
def client(monkeypatch, executor) -> TestClient:
    monkeypatch.setattr(main, "executor", executor)
    monkeypatch.setattr(main, "evaluator", executor.evaluator)
    return TestClient(main.app)


STATE = {
    "typebotsQueue": [{
        "typebot": {
            "id": "tb1",
            "variables": [
                {"id": "vtotal", "name": "Total", "value": "40"},
                {"id": "vresult", "name": "Result"},
            ],
        },
        "resultId": "r1",
    }],
}


def set_variable_block(**options) -> dict:
    return {"id": "b1", "outgoingEdgeId": "e1", "options": {"variableId": "vresult", **options}}


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


def test_execute_commits_value(client):
    res = client.post(
        "/api/blocks/set-variable/execute",
        json={"state": STATE, "block": set_variable_block(expressionToEvaluate="{{Total}} * 2")},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["outgoingEdgeId"] == "e1"
    assert body["metadata"] == {"route": "server_evaluate"}
    variables = body["newSessionState"]["typebotsQueue"][0]["typebot"]["variables"]
    assert variables[1] == {"id": "vresult", "name": "Result", "value": 80}
    assert body["newSessionState"]["typebotsQueue"][0]["resultId"] == "r1"


def test_execute_returns_client_action(client):
    res = client.post(
        "/api/blocks/set-variable/execute",
        json={"state": STATE, "block": set_variable_block(expressionToEvaluate="{{Total}} + 1", isExecutedOnClient=True)},
    )
    body = res.json()
    assert "newSessionState" not in body
    script = body["clientSideActions"][0]["setVariable"]["scriptToExecute"]
    assert script == {"content": "vtotal + 1", "args": [{"id": "vtotal", "value": 40}]}


def test_execute_with_bad_zone_is_unprocessable(client):
    res = client.post(
        "/api/blocks/set-variable/execute",
        json={"state": STATE, "block": set_variable_block(type="Now", timeZone="Nowhere/Land")},
    )
    assert res.status_code == 422
    assert res.json() == {"detail": "Invalid time zone: 'Nowhere/Land'"}


def test_client_reply(client):
    res = client.post(
        "/api/blocks/set-variable/reply",
        json={"state": STATE, "block": set_variable_block(isExecutedOnClient=True), "reply": "42"},
    )
    variables = res.json()["newSessionState"]["typebotsQueue"][0]["typebot"]["variables"]
    assert variables[1]["value"] == 42


def test_validate(client):
    res = client.post("/api/blocks/set-variable/validate", json={"options": {"type": "Append value(s)"}})
    assert res.json() == {
        "valid": False,
        "errors": ["variableId is required", "Append value(s) needs an item to append"],
    }


def test_evaluate_expression(client):
    res = client.post(
        "/api/expressions/evaluate",
        json={"expression": "{{Total}} * 2", "variables": [{"id": "vtotal", "name": "Total", "value": "40"}]},
    )
    assert res.json() == {"value": 80}


def test_execute_with_empty_queue_is_unprocessable(client):
    res = client.post(
        "/api/blocks/set-variable/execute",
        json={"state": {"typebotsQueue": []}, "block": set_variable_block(type="Environment name")},
    )
    assert res.status_code == 422


def test_evaluate_lone_surrogate(client):
    for expression in ("'\\ud800'", "String.fromCharCode(0xD800)"):
        res = client.post("/api/expressions/evaluate", json={"expression": expression, "variables": []})
        assert res.status_code == 200
        assert res.json() == {"value": "\ufffd"}
