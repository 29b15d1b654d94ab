"""Microphone capture in bounded listening windows."""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any

from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

log = logging.getLogger("senses.recorder")


class SoundDeviceRecorder:
    """Pushes PCM frames into a queue until ``window_s`` of audio is captured.

    The window closes with a ``None`` sentinel, which is how a listening
    session ends naturally. ``stop()`` closes it early.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        window_s: float = 5.0,
        device: int | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.window_ms = int(window_s * 1000)
        self.device = device
        self._stream: Any = None
        self._capturing = False
        self._captured_ms = 0
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._stream is not None:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            self._captured_ms = 0
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                device=self.device,
                callback=self._on_audio,
            )
            self._capturing = True
            self._stream.start()

    def stop(self) -> None:
        with self._lock:
            was_capturing = self._capturing
            self._capturing = False
            if self._stream is not None:
                try:
                    self._stream.stop()
                    self._stream.close()
                finally:
                    self._stream = None
            if was_capturing:
                self._emit_sentinel()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            log.debug("Input stream status: %s", status)
        if not self._capturing or self._audio_queue is None or np is None:
            return
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1
        self._captured_ms += int(frames * 1000 / self.sample_rate)
        if self._captured_ms >= self.window_ms:
            self._capturing = False
            self._emit_sentinel()

    def _emit_sentinel(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            log.debug("Audio queue full, sentinel dropped")
