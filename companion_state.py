"""
Companion State Module
======================
Everything Luna knows about the current session, in one explicit object.

The state is created once at startup by CompanionMemory.restore() and then
owned by the ResponseCoordinator, which is the only thing allowed to change
the turn-related fields.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from companion_log import ConversationLog
from companion_personas import DEFAULT_PERSONALITY, Personality


class TurnPhase(Enum):
    """Where the current user turn is in its lifecycle."""
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    STREAMING = "streaming"
    GENERATING_IMAGE = "generating_image"


@dataclass
class SessionState:
    active_personality: Personality = DEFAULT_PERSONALITY
    log: ConversationLog = field(default_factory=ConversationLog)
    voice_output_enabled: bool = True
    user_avatar: Optional[str] = None

    # Turn bookkeeping - the coordinator's lock
    pending_request: bool = False
    streaming_message_id: Optional[int] = None
    phase: TurnPhase = TurnPhase.IDLE

    # Opaque chat handle; created lazily on the first chat turn
    backend_session: Any = None

    # Composer and banner
    input_text: str = ""
    is_recording: bool = False
    error: Optional[Exception] = None

    @property
    def is_busy(self) -> bool:
        """True while a turn is in flight; new submissions are refused."""
        return self.pending_request or self.streaming_message_id is not None
