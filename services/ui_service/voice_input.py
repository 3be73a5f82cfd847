"""
Voice input state machine.

Speech capture happens in the browser; this class tracks where a capture is
and rejects events that do not fit the current state.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from services.exceptions import InvalidTransitionError
from utils.logging_config import get_logger


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    DONE = "done"
    ERROR = "error"


TRANSITIONS: Dict[VoiceState, FrozenSet[VoiceState]] = {
    VoiceState.IDLE: frozenset({VoiceState.LISTENING}),
    VoiceState.LISTENING: frozenset({VoiceState.TRANSCRIBING, VoiceState.ERROR, VoiceState.IDLE}),
    VoiceState.TRANSCRIBING: frozenset({VoiceState.DONE, VoiceState.ERROR}),
    VoiceState.DONE: frozenset({VoiceState.IDLE}),
    VoiceState.ERROR: frozenset({VoiceState.IDLE}),
}


class VoiceInputStateMachine:
    """
    idle -> listening -> transcribing -> done | error, and back to idle on reset.
    Stopping while listening returns to idle without a transcript.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self.state = VoiceState.IDLE
        self.transcript: Optional[str] = None
        self.error: Optional[str] = None

    @property
    def is_listening(self) -> bool:
        return self.state is VoiceState.LISTENING

    def _move(self, target: VoiceState):
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot go from {self.state.value} to {target.value}")
        self.logger.debug(f"Voice input {self.state.value} -> {target.value}")
        self.state = target

    def start(self):
        self._move(VoiceState.LISTENING)
        self.transcript = None
        self.error = None

    def stop(self):
        """Cancel listening without producing a transcript"""
        self._move(VoiceState.IDLE)

    def audio_captured(self):
        self._move(VoiceState.TRANSCRIBING)

    def transcribed(self, transcript: str):
        if not transcript or not transcript.strip():
            self.fail("No speech detected")
            return
        self._move(VoiceState.DONE)
        self.transcript = transcript.strip()

    def fail(self, message: str):
        self._move(VoiceState.ERROR)
        self.error = message

    def reset(self) -> Optional[str]:
        """Return to idle, handing back the finished transcript if any"""
        transcript = self.transcript if self.state is VoiceState.DONE else None
        if self.state is not VoiceState.IDLE:
            self._move(VoiceState.IDLE)
        self.transcript = None
        self.error = None
        return transcript
