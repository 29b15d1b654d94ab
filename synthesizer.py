"""Offline text-to-speech based on pyttsx3."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Any, Iterable, Optional

from interfaces import UtteranceCallback

try:
    import pyttsx3
except Exception:  # pragma: no cover
    pyttsx3 = None  # type: ignore

log = logging.getLogger("senses.synthesizer")

VOICE_ALLOW_LIST = (
    "Alex",
    "Samantha",
    "Whisper",
    "Zarvox",
    "Bad News",
    "Daniel",
    "Pipe Organ",
    "Boing",
    "Karen",
    "Ralph",
    "Trinoids",
)


def allowed_voices(names: Iterable[str], allow_list: Iterable[str] = VOICE_ALLOW_LIST) -> list[str]:
    allowed = set(allow_list)
    return [name for name in names if name in allowed]


@dataclass
class _Utterance:
    text: str
    voice: Optional[str]
    on_done: UtteranceCallback
    epoch: int = 0
    cancelled: bool = False


class Pyttsx3Synthesizer:
    """Plays utterances one at a time on a dedicated engine thread."""

    def __init__(self, rate: Optional[int] = None, allow_list: Iterable[str] = VOICE_ALLOW_LIST) -> None:
        self._rate = rate
        self._allow_list = tuple(allow_list)
        self._engine: Any = None
        self._lock = threading.Lock()
        self._queue: Queue[_Utterance | None] = Queue()
        self._current: Optional[_Utterance] = None
        self._thread: Optional[threading.Thread] = None
        self._epoch = 0

    def speak(self, text: str, voice: Optional[str], on_done: UtteranceCallback) -> None:
        self._get_engine()
        self._ensure_worker()
        with self._lock:
            self._queue.put(_Utterance(text=text, voice=voice, on_done=on_done, epoch=self._epoch))

    def cancel(self) -> None:
        dropped: list[_Utterance] = []
        with self._lock:
            self._epoch += 1
            while True:
                try:
                    item = self._queue.get_nowait()
                except Empty:
                    break
                if item is not None:
                    dropped.append(item)
            current = self._current
            if current is not None:
                current.cancelled = True
            engine = self._engine
        if current is not None and engine is not None:
            engine.stop()
        for item in dropped:
            item.on_done(False)

    def voices(self) -> list[str]:
        engine = self._get_engine()
        names = [str(getattr(v, "name", "")) for v in engine.getProperty("voices") or []]
        return allowed_voices(names, self._allow_list)

    def close(self) -> None:
        self.cancel()
        self._queue.put(None)

    def _get_engine(self) -> Any:
        with self._lock:
            if self._engine is None:
                if pyttsx3 is None:
                    raise RuntimeError("pyttsx3 is not installed")
                self._engine = pyttsx3.init()
                if self._rate is not None:
                    self._engine.setProperty("rate", self._rate)
            return self._engine

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._worker, daemon=True, name="synthesizer")
            self._thread.start()

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            with self._lock:
                if item.epoch != self._epoch:
                    item.cancelled = True
                self._current = None if item.cancelled else item
                engine = self._engine
            completed = False
            try:
                if not item.cancelled:
                    completed = self._play(engine, item)
            except Exception as exc:
                log.warning("Utterance failed: %s", exc)
            finally:
                with self._lock:
                    self._current = None
            item.on_done(completed)

    def _play(self, engine: Any, item: _Utterance) -> bool:
        self._select_voice(engine, item.voice)
        with self._lock:
            if item.cancelled:
                return False
            engine.say(item.text)
        engine.runAndWait()
        return not item.cancelled

    @staticmethod
    def _select_voice(engine: Any, voice: Optional[str]) -> None:
        if not voice or voice == "default":
            return
        for candidate in engine.getProperty("voices") or []:
            if getattr(candidate, "name", None) == voice:
                engine.setProperty("voice", candidate.id)
                return
