"""Listening stream built from the microphone recorder and the transcriber."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Queue
from typing import Optional

from interfaces import Recorder, SessionEndCallback, TranscriptCallback
from models import AudioFrame, TranscriptEvent, TranscriptKind
from recognizer import DashscopeTranscriber

log = logging.getLogger("senses.listener")


class ContinuousListener:
    """One session = one captured window, transcribed, then ``on_session_end``.

    Like a browser recognition session it ends on its own; the owner decides
    whether to start the next one. A stopped session reports nothing more.
    """

    def __init__(
        self,
        recorder: Recorder,
        transcriber: DashscopeTranscriber,
        queue_maxsize: int = 100,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._queue_maxsize = queue_maxsize
        self._lock = threading.Lock()
        self._session_stop: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._session_stop is not None

    def start(self, on_transcript: TranscriptCallback, on_session_end: SessionEndCallback) -> None:
        with self._lock:
            if self._session_stop is not None:
                return
            stop_event = threading.Event()
            audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            self._recorder.start(audio_queue)
            self._session_stop = stop_event
            self._thread = threading.Thread(
                target=self._worker,
                args=(audio_queue, stop_event, on_transcript, on_session_end),
                daemon=True,
                name="listening-session",
            )
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            stop_event, self._session_stop = self._session_stop, None
        if stop_event is None:
            return
        stop_event.set()
        self._recorder.stop()

    def _worker(
        self,
        audio_queue: Queue[AudioFrame | None],
        stop_event: threading.Event,
        on_transcript: TranscriptCallback,
        on_session_end: SessionEndCallback,
    ) -> None:
        pcm = bytearray()
        sample_rate, channels = 16000, 1
        while not stop_event.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate, channels = frame.sample_rate, frame.channels
        with self._lock:
            if self._session_stop is not stop_event:
                return
            self._safe_stop_recorder()

        def deliver(event: TranscriptEvent) -> None:
            if stop_event.is_set():
                return
            if event.kind == TranscriptKind.ERROR.value:
                log.warning("Listening session error [%s]: %s", event.code, event.message)
            elif event.alternatives:
                on_transcript(list(event.alternatives), event.kind == TranscriptKind.FINAL.value)

        self._transcriber.transcribe(bytes(pcm), sample_rate, channels, deliver, stop_event.is_set)

        with self._lock:
            if self._session_stop is not stop_event:
                return
            self._session_stop = None
        on_session_end()

    def _safe_stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception as exc:
            log.warning("Closing capture window failed: %s", exc)
