"""Remote intent classifier client (LUIS v2 prediction and authoring APIs).

Prediction resolves a sentence to its top-scoring intent and the entities
found in it. Authoring lists, creates, trains and publishes the app that
backs a model ref; a model ref is the LUIS app id.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import requests

from errors import AUTH_FAILED, NETWORK_ERROR, PROTOCOL_ERROR, PROVISIONING_FAILED, SenseError
from models import Entity, ModelSummary, Recognition

log = logging.getLogger("senses.classifier")

DEFAULT_VERSION = "0.1"
DEFAULT_APP_NAME = "sense-blocks"

DEFAULT_TRAINING_DATA: dict = {
    "intents": ["Describe surroundings", "Help", "Pick up", "Use tool"],
    "entities": ["tool", "object"],
    "examples": [
        {"text": "what do i see", "intentName": "Describe surroundings"},
        {"text": "look around", "intentName": "Describe surroundings"},
        {"text": "help me", "intentName": "Help"},
        {"text": "what can i do", "intentName": "Help"},
        {
            "text": "pick up the crowbar",
            "intentName": "Pick up",
            "entityLabels": [{"entityName": "object", "startCharIndex": 12, "endCharIndex": 18}],
        },
        {
            "text": "open the door with the crowbar",
            "intentName": "Use tool",
            "entityLabels": [
                {"entityName": "object", "startCharIndex": 9, "endCharIndex": 12},
                {"entityName": "tool", "startCharIndex": 23, "endCharIndex": 29},
            ],
        },
    ],
}

_TRAINING_DONE = {"Success", "UpToDate"}
_TRAINING_FAILED = {"Fail"}


def parse_prediction(payload: Any) -> Recognition:
    """Build a Recognition from a v2 prediction response."""
    if not isinstance(payload, dict):
        raise SenseError(PROTOCOL_ERROR, "prediction response is not an object")
    top = payload.get("topScoringIntent")
    if not isinstance(top, dict) or "intent" not in top:
        raise SenseError(PROTOCOL_ERROR, "prediction response has no topScoringIntent")
    entities = tuple(
        Entity(type=str(item.get("type", "")), entity=str(item.get("entity", "")))
        for item in payload.get("entities", [])
        if isinstance(item, dict)
    )
    return Recognition(
        intent=str(top["intent"]),
        entities=entities,
        query=str(payload.get("query", "")),
        score=float(top.get("score") or 0.0),
    )


class LuisModelHandle:
    def __init__(
        self,
        client: "LuisClassifierClient",
        app_id: str,
        version: str = DEFAULT_VERSION,
        training_data: Optional[dict] = None,
    ) -> None:
        self._client = client
        self._app_id = app_id
        self._version = version
        self._training_data = training_data if training_data is not None else DEFAULT_TRAINING_DATA

    @property
    def model_ref(self) -> str:
        return self._app_id

    def _version_path(self, suffix: str) -> str:
        return f"apps/{self._app_id}/versions/{self._version}/{suffix}"

    def load_data(self) -> None:
        for intent in self._training_data.get("intents", []):
            self._client._authoring("POST", self._version_path("intents"), json={"name": intent})
        for entity in self._training_data.get("entities", []):
            self._client._authoring("POST", self._version_path("entities"), json={"name": entity})
        examples = self._training_data.get("examples", [])
        if examples:
            self._client._authoring("POST", self._version_path("examples"), json=examples)

    def start_training(self) -> None:
        self._client._authoring("POST", self._version_path("train"))

    def wait_for_training_to_complete(self) -> None:
        deadline = time.monotonic() + self._client.training_timeout_s
        while True:
            statuses = self._client._authoring("GET", self._version_path("train")) or []
            details = [item.get("details", {}) for item in statuses if isinstance(item, dict)]
            failed = [d for d in details if d.get("status") in _TRAINING_FAILED]
            if failed:
                reason = failed[0].get("failureReason") or "training failed"
                raise SenseError(PROVISIONING_FAILED, str(reason))
            if details and all(d.get("status") in _TRAINING_DONE for d in details):
                return
            if time.monotonic() >= deadline:
                raise SenseError(PROVISIONING_FAILED, "training timed out", retryable=True)
            time.sleep(self._client.poll_interval_s)

    def publish(self) -> None:
        self._client._authoring(
            "POST",
            f"apps/{self._app_id}/publish",
            json={"versionId": self._version, "isStaging": False},
        )

    def intents(self) -> list[str]:
        items = self._client._authoring("GET", self._version_path("intents")) or []
        return [str(item["name"]) for item in items if isinstance(item, dict) and item.get("name")]

    def entities(self) -> list[str]:
        items = self._client._authoring("GET", self._version_path("entities")) or []
        return [str(item["name"]) for item in items if isinstance(item, dict) and item.get("name")]


class LuisClassifierClient:
    def __init__(
        self,
        endpoint: str,
        subscription_key: str,
        training_data: Optional[dict] = None,
        app_name: str = DEFAULT_APP_NAME,
        request_timeout_s: float = 10.0,
        training_timeout_s: float = 300.0,
        poll_interval_s: float = 2.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._key = subscription_key
        self._training_data = training_data or None
        self._app_name = app_name
        self._request_timeout_s = request_timeout_s
        self.training_timeout_s = training_timeout_s
        self.poll_interval_s = poll_interval_s
        self._session = session or requests.Session()

    def submit_utterance(self, model_ref: str, text: str) -> Recognition:
        url = f"{self._endpoint}/luis/v2.0/apps/{model_ref}"
        params = {
            "subscription-key": self._key,
            "verbose": "true",
            "timezoneOffset": "0",
            "q": text,
        }
        return parse_prediction(self._send("GET", url, params=params))

    def list_models(self) -> list[ModelSummary]:
        items = self._authoring("GET", "apps/") or []
        return [
            ModelSummary(
                model_ref=str(item["id"]),
                name=str(item.get("name", "")),
                description=str(item.get("description") or ""),
            )
            for item in items
            if isinstance(item, dict) and item.get("id")
        ]

    def create_model(self) -> LuisModelHandle:
        body = {"name": f"{self._app_name}-{int(time.time())}", "culture": "en-us", "initialVersionId": DEFAULT_VERSION}
        app_id = self._authoring("POST", "apps/", json=body)
        if not isinstance(app_id, str) or not app_id:
            raise SenseError(PROTOCOL_ERROR, "create app returned no id")
        log.info("Created classifier app %s", app_id)
        return LuisModelHandle(self, app_id, DEFAULT_VERSION, self._training_data)

    def get_model(self, model_ref: str) -> LuisModelHandle:
        info = self._authoring("GET", f"apps/{model_ref}")
        if not isinstance(info, dict):
            raise SenseError(PROTOCOL_ERROR, f"app {model_ref} has no info")
        version = str(info.get("activeVersion") or DEFAULT_VERSION)
        return LuisModelHandle(self, model_ref, version, self._training_data)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _authoring(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{self._endpoint}/luis/api/v2.0/{path}"
        return self._send(method, url, json=json, headers={"Ocp-Apim-Subscription-Key": self._key})

    def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        if not self._key:
            raise SenseError(AUTH_FAILED, "No classifier subscription key configured")
        try:
            response = self._session.request(method, url, timeout=self._request_timeout_s, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise SenseError(NETWORK_ERROR, str(exc), retryable=True) from exc

        status = response.status_code
        if status in (401, 403):
            raise SenseError(AUTH_FAILED, f"{status}: {response.text.strip()}")
        if status == 429 or status >= 500:
            raise SenseError(NETWORK_ERROR, f"{status}: {response.text.strip()}", retryable=True)
        if status >= 400:
            raise SenseError(PROTOCOL_ERROR, f"{status}: {response.text.strip()}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise SenseError(PROTOCOL_ERROR, f"invalid JSON from {url}") from exc
