"""Speech-to-text for one captured listening window, via DashScope.

qwen3-asr-flash takes complete audio as base64 WAV and streams back
successively longer hypotheses with ``stream=True``. Each hypothesis is
reported as a partial transcript and the last one as the final transcript.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import wave
from typing import Callable, Optional

from errors import AUTH_FAILED, PROTOCOL_ERROR, classify_exception
from models import TranscriptEvent, TranscriptKind

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

log = logging.getLogger("senses.recognizer")

TranscriptSink = Callable[[TranscriptEvent], None]


def pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def extract_text(chunk: object) -> str:
    if not isinstance(chunk, dict):
        return ""
    choices = chunk.get("output", {}).get("choices", [])
    if not choices:
        return ""
    content = choices[0].get("message", {}).get("content", [])
    if not content or not isinstance(content[0], dict):
        return ""
    return str(content[0].get("text", "")).strip()


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def transcribe(
        self,
        pcm: bytes,
        sample_rate: int,
        channels: int,
        on_event: TranscriptSink,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Report partial, final or error events for ``pcm``.

        Nothing is reported after ``should_stop()`` turns true.
        """
        stopped = should_stop or (lambda: False)
        if not pcm:
            on_event(TranscriptEvent(kind=TranscriptKind.FINAL.value))
            return
        if dashscope is None:
            on_event(self._error(PROTOCOL_ERROR, "dashscope is not installed"))
            return
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            on_event(self._error(AUTH_FAILED, "No speech API key configured"))
            return

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": pcm_to_wav_base64(pcm, sample_rate, channels)}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest = ""
            for chunk in response:
                if stopped():
                    return
                text = extract_text(chunk)
                if text and text != latest:
                    latest = text
                    on_event(TranscriptEvent(kind=TranscriptKind.PARTIAL.value, alternatives=[text]))
        except Exception as exc:
            error = classify_exception(exc)
            log.warning("Transcription failed [%s]: %s", error.code, error.message)
            on_event(self._error(error.code, error.message))
            return

        if stopped():
            return
        on_event(TranscriptEvent(kind=TranscriptKind.FINAL.value, alternatives=[latest] if latest else []))

    @staticmethod
    def _error(code: str, message: str) -> TranscriptEvent:
        return TranscriptEvent(kind=TranscriptKind.ERROR.value, code=code, message=message)
