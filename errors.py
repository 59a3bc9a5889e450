"""Shared error codes and user-facing messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Capture errors surfaced to callers
UNSUPPORTED = "UNSUPPORTED"
PERMISSION_DENIED = "PERMISSION_DENIED"
NO_SPEECH_DETECTED = "NO_SPEECH_DETECTED"
NETWORK_ERROR = "NETWORK_ERROR"
COULD_NOT_START = "COULD_NOT_START"
ENGINE_ERROR = "ENGINE_ERROR"
# Returned from start() only, never recorded
ALREADY_LISTENING = "ALREADY_LISTENING"

ERROR_MESSAGES = {
    UNSUPPORTED: "Speech recognition is not supported on this system.",
    PERMISSION_DENIED: "Microphone access was denied. Please allow microphone access.",
    NO_SPEECH_DETECTED: "No speech was detected. Please try again.",
    NETWORK_ERROR: "Network failed, please retry.",
    COULD_NOT_START: "Could not start listening. Is another app using the microphone?",
    ENGINE_ERROR: "An error occurred: {detail}",
    ALREADY_LISTENING: "Already listening.",
}

# Engine-level codes reported by recognition and synthesis engines
ENGINE_ABORTED = "aborted"
ENGINE_NO_SPEECH = "no-speech"
ENGINE_NETWORK = "network"
ENGINE_NOT_ALLOWED = "not-allowed"
ENGINE_SERVICE_NOT_ALLOWED = "service-not-allowed"
ENGINE_AUDIO_CAPTURE = "audio-capture"
ENGINE_ASR_PROTOCOL = "asr-protocol"
ENGINE_CANCELED = "canceled"
ENGINE_INTERRUPTED = "interrupted"

_ENGINE_CODE_MAP = {
    ENGINE_NOT_ALLOWED: PERMISSION_DENIED,
    ENGINE_SERVICE_NOT_ALLOWED: PERMISSION_DENIED,
    ENGINE_NO_SPEECH: NO_SPEECH_DETECTED,
    ENGINE_NETWORK: NETWORK_ERROR,
}


@dataclass(frozen=True)
class CaptureError:
    code: str
    detail: str = ""

    @property
    def message(self) -> str:
        template = ERROR_MESSAGES.get(self.code, "{detail}")
        return template.format(detail=self.detail or self.code)


def map_recognition_error(engine_code: str) -> Optional[CaptureError]:
    """Translate a recognition engine code; ``None`` means the code is not an error."""
    if engine_code == ENGINE_ABORTED:
        return None
    mapped = _ENGINE_CODE_MAP.get(engine_code)
    if mapped is not None:
        return CaptureError(mapped, engine_code)
    return CaptureError(ENGINE_ERROR, engine_code)
