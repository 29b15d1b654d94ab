"""Mutual exclusion between continuous listening and speech synthesis."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from errors import LISTENING_RESTART_FAILED, SYNTHESIS_FAILED
from interfaces import ErrorCallback, ListeningStream, Synthesizer
from models import ListeningState

log = logging.getLogger("senses.arbiter")

ListeningCallback = Callable[[ListeningState, ListeningState], None]


class RecognitionSynthesisArbiter:
    """Keeps the listener from hearing our own synthesized speech.

    Listening restarts itself after every natural session end. ``speak()``
    suppresses it for the life of one utterance and always resumes it when
    that utterance ends, is cancelled, or fails. A second ``speak()`` cancels
    the playing utterance; only the newest utterance's end resumes listening.
    """

    def __init__(
        self,
        listener: ListeningStream,
        synthesizer: Synthesizer,
        on_listening_change: Optional[ListeningCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._listener = listener
        self._synthesizer = synthesizer
        self._on_listening_change = on_listening_change
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = ListeningState.ACTIVE
        self._started = False
        self._session = 0
        self._utterance = 0
        self._pending: dict[int, Future[bool]] = {}
        self._transcripts: list[str] = []
        self._latest_speech = ""
        self.last_restart_error: Optional[BaseException] = None

    @property
    def state(self) -> ListeningState:
        return self._state

    @property
    def latest_speech(self) -> str:
        return self._latest_speech

    def transcripts(self) -> list[str]:
        return list(self._transcripts)

    def consume_transcripts(self) -> None:
        with self._lock:
            self._transcripts = []

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
            self._start_session()

    def stop(self) -> None:
        with self._lock:
            self._started = False
            self._session += 1
            self._safe_stop_listener()

    def speak(self, text: str, voice: Optional[str] = None) -> Future[bool]:
        future: Future[bool] = Future()
        preempted: Optional[Future[bool]] = None
        with self._lock:
            previous = self._utterance
            self._utterance += 1
            token = self._utterance
            self._pending[token] = future
            if previous in self._pending:
                log.debug("Preempting utterance %d with %d", previous, token)
                self._safe_cancel_synthesizer()
                preempted = self._pending.pop(previous, None)
            if self._state == ListeningState.ACTIVE:
                self._set_state(ListeningState.SUPPRESSED_FOR_SYNTHESIS)
                self._session += 1
                self._safe_stop_listener()

        if preempted is not None and not preempted.done():
            preempted.set_result(False)
        try:
            self._synthesizer.speak(text, voice, lambda completed: self._utterance_done(token, completed))
        except Exception as exc:
            log.warning("Synthesis failed: %s", exc)
            if self._on_error:
                self._on_error(SYNTHESIS_FAILED, str(exc))
            self._utterance_done(token, False)
        return future

    # ------------------------------------------------------------------
    # Engine callbacks
    # ------------------------------------------------------------------

    def _utterance_done(self, token: int, completed: bool) -> None:
        with self._lock:
            future = self._pending.pop(token, None)
            if future is None:
                return
            if token == self._utterance and self._state == ListeningState.SUPPRESSED_FOR_SYNTHESIS:
                self._set_state(ListeningState.ACTIVE)
                if self._started:
                    self._start_session()
        if not future.done():
            future.set_result(completed)

    def _handle_transcript(self, session: int, alternatives: list[str], final: bool) -> None:
        with self._lock:
            if session != self._session or self._state != ListeningState.ACTIVE:
                return
            results = [text.lower() for text in alternatives if text]
            if not results:
                return
            self._transcripts = results
            self._latest_speech = results[0]

    def _handle_session_end(self, session: int) -> None:
        with self._lock:
            if session != self._session or not self._started:
                return
            if self._state != ListeningState.ACTIVE:
                return
            self._start_session()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _start_session(self) -> None:
        self._session += 1
        session = self._session
        try:
            self._listener.start(
                lambda alternatives, final: self._handle_transcript(session, alternatives, final),
                lambda: self._handle_session_end(session),
            )
            self.last_restart_error = None
        except Exception as exc:
            self.last_restart_error = exc
            log.warning("Listening restart failed: %s", exc)
            if self._on_error:
                self._on_error(LISTENING_RESTART_FAILED, str(exc))

    def _safe_stop_listener(self) -> None:
        try:
            self._listener.stop()
        except Exception as exc:
            log.warning("Stopping listener failed: %s", exc)

    def _safe_cancel_synthesizer(self) -> None:
        try:
            self._synthesizer.cancel()
        except Exception as exc:
            log.warning("Cancelling utterance failed: %s", exc)

    def _set_state(self, to_state: ListeningState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        log.debug("Listening %s -> %s", from_state.value, to_state.value)
        if self._on_listening_change:
            self._on_listening_change(from_state, to_state)
