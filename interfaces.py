"""Protocol interfaces for the external collaborators of the senses."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Optional, Protocol

from models import AudioFrame, ModelSummary, Recognition

TranscriptCallback = Callable[[list[str], bool], None]
SessionEndCallback = Callable[[], None]
UtteranceCallback = Callable[[bool], None]
GestureCallback = Callable[[dict], None]
ErrorCallback = Callable[[str, str], None]


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class ModelHandle(Protocol):
    @property
    def model_ref(self) -> str: ...

    def load_data(self) -> None: ...

    def start_training(self) -> None: ...

    def wait_for_training_to_complete(self) -> None: ...

    def publish(self) -> None: ...

    def intents(self) -> list[str]: ...

    def entities(self) -> list[str]: ...


class ClassifierClient(Protocol):
    def submit_utterance(self, model_ref: str, text: str) -> Recognition: ...

    def list_models(self) -> list[ModelSummary]: ...

    def create_model(self) -> ModelHandle: ...

    def get_model(self, model_ref: str) -> ModelHandle: ...


class ModelChooser(Protocol):
    """Asks the operator which remote model to use.

    Returns the chosen ``model_ref`` or ``None`` to create a new model.
    May block for as long as the operator takes.
    """

    def choose(self, models: list[ModelSummary]) -> Optional[str]: ...


class ModelRefStore(Protocol):
    def get_model_ref(self) -> Optional[str]: ...

    def set_model_ref(self, model_ref: Optional[str]) -> None: ...


class ListeningStream(Protocol):
    def start(self, on_transcript: TranscriptCallback, on_session_end: SessionEndCallback) -> None: ...

    def stop(self) -> None: ...


class Synthesizer(Protocol):
    def speak(self, text: str, voice: Optional[str], on_done: UtteranceCallback) -> None: ...

    def cancel(self) -> None: ...

    def voices(self) -> list[str]: ...


class GestureTransport(Protocol):
    def start(self, on_gesture: GestureCallback) -> None: ...

    def stop(self) -> None: ...


class Host(Protocol):
    def register(self, hat_name: str, edge_triggered: bool = True) -> None: ...
