"""JSON-based config store and stage-level program state."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger("senses.config")

DEFAULT_CLASSIFIER_ENDPOINT = "https://westus.api.cognitive.microsoft.com"
DEFAULT_GESTURE_URL = "http://localhost:3000"
DEFAULT_GESTURE_SESSION = "scratch"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "sense_blocks" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_classifier_endpoint(self) -> str:
        return str(self._read_all().get("classifier_endpoint", DEFAULT_CLASSIFIER_ENDPOINT))

    def set_classifier_endpoint(self, endpoint: str) -> None:
        self._update("classifier_endpoint", endpoint)

    def get_subscription_key(self) -> str:
        value = str(self._read_all().get("subscription_key", ""))
        return value or os.getenv("LUIS_SUBSCRIPTION_KEY", "")

    def set_subscription_key(self, key: str) -> None:
        self._update("subscription_key", key)

    def get_dashscope_api_key(self) -> str:
        value = str(self._read_all().get("dashscope_api_key", ""))
        return value or os.getenv("DASHSCOPE_API_KEY", "")

    def set_dashscope_api_key(self, key: str) -> None:
        self._update("dashscope_api_key", key)

    def get_gesture_url(self) -> str:
        return str(self._read_all().get("gesture_url", DEFAULT_GESTURE_URL))

    def get_gesture_session(self) -> str:
        return str(self._read_all().get("gesture_session", DEFAULT_GESTURE_SESSION))

    def get_voice_name(self) -> str:
        return str(self._read_all().get("voice_name", "default"))

    def set_voice_name(self, name: str) -> None:
        self._update("voice_name", name)

    def get_training_data(self) -> dict:
        data = self._read_all().get("training_data", {})
        return data if isinstance(data, dict) else {}

    def get_model_ref(self) -> Optional[str]:
        value = self._read_all().get("model_ref")
        return str(value) if value else None

    def set_model_ref(self, model_ref: Optional[str]) -> None:
        self._update("model_ref", model_ref)

    def _update(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            log.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass
class StageState:
    """Program-global state serialised with the rest of the project.

    ``model_ref`` is the only field the senses own; it is restored verbatim
    on reload and written back only by ``ModelLifecycle``.
    """

    model_ref: Optional[str] = None
    store: Optional[JsonConfigStore] = None

    STATE_KEY = "Scratch.language"

    def get_model_ref(self) -> Optional[str]:
        if self.model_ref is None and self.store is not None:
            self.model_ref = self.store.get_model_ref()
        return self.model_ref

    def set_model_ref(self, model_ref: Optional[str]) -> None:
        self.model_ref = model_ref
        if self.store is not None:
            self.store.set_model_ref(model_ref)

    def to_dict(self) -> dict:
        return {self.STATE_KEY: {"modelRef": self.model_ref}}

    @classmethod
    def from_dict(cls, data: dict, store: Optional[JsonConfigStore] = None) -> "StageState":
        section = data.get(cls.STATE_KEY) if isinstance(data, dict) else None
        ref = section.get("modelRef") if isinstance(section, dict) else None
        return cls(model_ref=str(ref) if ref else None, store=store)
