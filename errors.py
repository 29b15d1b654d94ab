"""Shared error codes and user-facing messages."""

from __future__ import annotations

NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
PROTOCOL_ERROR = "PROTOCOL_ERROR"
PROVISIONING_FAILED = "PROVISIONING_FAILED"
NO_ACTIVE_MODEL = "NO_ACTIVE_MODEL"
LISTENING_RESTART_FAILED = "LISTENING_RESTART_FAILED"
SYNTHESIS_FAILED = "SYNTHESIS_FAILED"

ERROR_MESSAGES = {
    NETWORK_ERROR: "Network failed, the next block run will retry.",
    AUTH_FAILED: "Classifier key is invalid.",
    PROTOCOL_ERROR: "Service response format is invalid.",
    PROVISIONING_FAILED: "Could not prepare a language model.",
    NO_ACTIVE_MODEL: "No language model is ready yet.",
    LISTENING_RESTART_FAILED: "Listening could not be resumed.",
    SYNTHESIS_FAILED: "Speech could not be played.",
}


class SenseError(Exception):
    """Failure reported by an external adapter, tagged with an error code."""

    def __init__(self, code: str, message: str = "", retryable: bool = False) -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)
        self.retryable = retryable


def classify_exception(exc: BaseException) -> SenseError:
    """Map an SDK/network exception to a tagged error."""
    if isinstance(exc, SenseError):
        return exc
    message = str(exc)
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "key" in low:
        return SenseError(AUTH_FAILED, message, retryable=False)
    if "timeout" in low or "timed out" in low or "network" in low or "connection" in low:
        return SenseError(NETWORK_ERROR, message, retryable=True)
    return SenseError(PROTOCOL_ERROR, message, retryable=True)
