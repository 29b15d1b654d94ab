from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from classifier import LuisClassifierClient, LuisModelHandle, parse_prediction
from errors import AUTH_FAILED, NETWORK_ERROR, PROTOCOL_ERROR, PROVISIONING_FAILED, SenseError

ENDPOINT = "https://westus.api.cognitive.microsoft.com"


def _response(status: int = 200, payload: Any = None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.content = b"" if payload is None else json.dumps(payload).encode()
    response.json.return_value = payload
    response.text = text
    return response


def _client(*responses: Any, key: str = "secret", **kwargs: Any) -> tuple[LuisClassifierClient, MagicMock]:
    session = MagicMock()
    session.request.side_effect = list(responses)
    return LuisClassifierClient(ENDPOINT, key, session=session, **kwargs), session


def test_parse_prediction_reads_intent_and_entities() -> None:
    result = parse_prediction(
        {
            "query": "pick up the crowbar",
            "topScoringIntent": {"intent": "Pick up", "score": 0.93},
            "entities": [{"entity": "crowbar", "type": "object"}],
        }
    )

    assert result.intent == "Pick up"
    assert result.score == pytest.approx(0.93)
    assert result.entity("object") == "crowbar"
    assert result.entity("tool") == ""


@pytest.mark.parametrize("payload", [None, [], {"query": "hi"}, {"topScoringIntent": "Help"}])
def test_parse_prediction_rejects_bad_shapes(payload: Any) -> None:
    with pytest.raises(SenseError) as info:
        parse_prediction(payload)
    assert info.value.code == PROTOCOL_ERROR


def test_submit_utterance_queries_prediction_endpoint() -> None:
    client, session = _client(_response(payload={"topScoringIntent": {"intent": "Help"}, "entities": []}))

    result = client.submit_utterance("app-1", "help me")

    assert result.intent == "Help"
    method, url = session.request.call_args.args
    assert (method, url) == ("GET", f"{ENDPOINT}/luis/v2.0/apps/app-1")
    assert session.request.call_args.kwargs["params"]["q"] == "help me"
    assert session.request.call_args.kwargs["params"]["subscription-key"] == "secret"


def test_missing_key_is_auth_failure_without_request() -> None:
    client, session = _client(key="")

    with pytest.raises(SenseError) as info:
        client.submit_utterance("app-1", "hi")

    assert info.value.code == AUTH_FAILED
    session.request.assert_not_called()


@pytest.mark.parametrize(
    ("status", "code", "retryable"),
    [(401, AUTH_FAILED, False), (403, AUTH_FAILED, False), (429, NETWORK_ERROR, True), (503, NETWORK_ERROR, True), (404, PROTOCOL_ERROR, False)],
)
def test_http_status_mapping(status: int, code: str, retryable: bool) -> None:
    client, _ = _client(_response(status, text="nope"))

    with pytest.raises(SenseError) as info:
        client.submit_utterance("app-1", "hi")

    assert info.value.code == code
    assert info.value.retryable is retryable


def test_transport_failure_is_network_error() -> None:
    client, _ = _client(requests.exceptions.ConnectionError("connection refused"))

    with pytest.raises(SenseError) as info:
        client.list_models()

    assert info.value.code == NETWORK_ERROR
    assert info.value.retryable is True


def test_invalid_json_is_protocol_error() -> None:
    response = _response(payload={})
    response.content = b"<html>"
    response.json.side_effect = ValueError("no json")
    client, _ = _client(response)

    with pytest.raises(SenseError) as info:
        client.list_models()

    assert info.value.code == PROTOCOL_ERROR


def test_list_models_and_authoring_header() -> None:
    client, session = _client(
        _response(payload=[{"id": "app-1", "name": "Adventure", "description": None}, {"name": "no id"}])
    )

    models = client.list_models()

    assert [(m.model_ref, m.name, m.description) for m in models] == [("app-1", "Adventure", "")]
    assert session.request.call_args.kwargs["headers"] == {"Ocp-Apim-Subscription-Key": "secret"}


def test_create_model_returns_handle() -> None:
    client, session = _client(_response(201, payload="new-app-id"))

    handle = client.create_model()

    assert isinstance(handle, LuisModelHandle)
    assert handle.model_ref == "new-app-id"
    assert session.request.call_args.kwargs["json"]["culture"] == "en-us"


def test_create_model_without_id_is_protocol_error() -> None:
    client, _ = _client(_response(201, payload={}))

    with pytest.raises(SenseError) as info:
        client.create_model()

    assert info.value.code == PROTOCOL_ERROR


def test_get_model_uses_active_version() -> None:
    client, session = _client(_response(payload={"activeVersion": "0.3"}), _response(payload=[{"name": "Help"}]))

    handle = client.get_model("app-1")

    assert handle.intents() == ["Help"]
    assert session.request.call_args.args[1].endswith("apps/app-1/versions/0.3/intents")


def test_load_data_posts_intents_entities_and_examples() -> None:
    data = {"intents": ["Help"], "entities": ["tool"], "examples": [{"text": "help", "intentName": "Help"}]}
    client, session = _client(*(_response(201, payload="ok") for _ in range(3)), training_data=data)
    handle = LuisModelHandle(client, "app-1", "0.1", data)

    handle.load_data()

    paths = [c.args[1].rsplit("/", 1)[-1] for c in session.request.call_args_list]
    assert paths == ["intents", "entities", "examples"]


def test_training_polls_until_done() -> None:
    client, session = _client(
        _response(payload=[{"details": {"status": "InProgress"}}]),
        _response(payload=[{"details": {"status": "Success"}}, {"details": {"status": "UpToDate"}}]),
        poll_interval_s=0,
    )

    LuisModelHandle(client, "app-1").wait_for_training_to_complete()

    assert session.request.call_count == 2


def test_training_failure_is_provisioning_failed() -> None:
    client, _ = _client(
        _response(payload=[{"details": {"status": "InProgress"}}]),
        _response(payload=[{"details": {"status": "Fail", "failureReason": "FewLabels"}}]),
        poll_interval_s=0,
    )

    with pytest.raises(SenseError) as info:
        LuisModelHandle(client, "app-1").wait_for_training_to_complete()

    assert info.value.code == PROVISIONING_FAILED
    assert info.value.message == "FewLabels"


def test_training_timeout() -> None:
    client, _ = _client(_response(payload=[{"details": {"status": "Queued"}}]), training_timeout_s=0)

    with pytest.raises(SenseError) as info:
        LuisModelHandle(client, "app-1").wait_for_training_to_complete()

    assert info.value.code == PROVISIONING_FAILED
    assert info.value.retryable is True


def test_publish_posts_version() -> None:
    client, session = _client(_response(201, payload={"endpointUrl": "x"}))

    LuisModelHandle(client, "app-1", "0.2").publish()

    assert session.request.call_args.args[1].endswith("apps/app-1/publish")
    assert session.request.call_args.kwargs["json"] == {"versionId": "0.2", "isStaging": False}
