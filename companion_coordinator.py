"""
Companion Coordinator Module
============================
Runs one user turn at a time, from submission to Luna's finished reply.

    IDLE -> AWAITING_RESPONSE -> STREAMING        -> IDLE
                              -> GENERATING_IMAGE -> IDLE

Chat turns stream: an empty model message is appended as soon as the stream
is open and its text is replaced with the growing reply after every
fragment. Image turns post a "thinking" message, wait for the picture, then
post it. Any backend failure posts an apology, raises the error banner and
returns to IDLE - the coordinator never gets stuck on a failure.

Only one turn can be in flight. `pending_request` and
`streaming_message_id` together are the lock; a submission while either is
set is ignored.

There is no timeout and no cancellation: a backend call that never returns
leaves the turn parked where it is.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional

from companion_artist import load_avatar, to_data_uri
from companion_brain import ChatBackend
from companion_errors import ChatBackendFailure, CompanionError, ImageBackendFailure
from companion_intent import ImageIntent, classify
from companion_log import FavoritesView, Message, Role
from companion_memory import CompanionMemory
from companion_personas import Personality, get_persona
from companion_state import SessionState, TurnPhase
from companion_voice import CompanionVoice

if TYPE_CHECKING:
    from companion_senses import SpeechCapture


THINKING_TEXT = "Of course, my love. Let me paint that for you... 🎨"
IMAGE_READY_TEXT = "Here it is! I hope you like it. ❤️"

CLEAR_CHAT_WARNING = "Are you sure you want to clear this conversation? This action cannot be undone."


class ResponseCoordinator:
    """
    The companion's turn-taking state machine.

    All session changes go through here (or through CompanionMemory, which
    the coordinator calls), so the state has exactly one owner.
    """

    def __init__(self,
                 state: SessionState,
                 memory: CompanionMemory,
                 backend: ChatBackend,
                 voice: Optional[CompanionVoice] = None,
                 capture: Optional["SpeechCapture"] = None):
        """
        Args:
            state: Session restored by CompanionMemory.restore()
            memory: Lifecycle manager that persists the session
            backend: AI provider (chat, images, speech)
            voice: Speech playback (None when the device can't play audio)
            capture: Voice input session (None when there is no microphone)
        """
        self.state = state
        self.memory = memory
        self.backend = backend
        self.voice = voice
        self.capture = capture

    # ========== CAPABILITIES ==========

    @property
    def can_record(self) -> bool:
        return self.capture is not None

    def attach_capture(self, capture: "SpeechCapture"):
        self.capture = capture

    # Callbacks handed to SpeechCapture
    def on_transcript(self, transcript: str):
        self.state.input_text = transcript

    def on_capture_error(self, error: CompanionError):
        self.state.error = error

    def on_recording_changed(self, recording: bool):
        self.state.is_recording = recording

    # ========== TURNS ==========

    @property
    def phase(self) -> TurnPhase:
        return self.state.phase

    async def submit(self, text: str) -> bool:
        """
        Send a user message and run Luna's reply to completion.

        Returns:
            False when the message was ignored (empty, or a turn is already running)
        """
        if self.capture is not None and self.capture.is_recording:
            self.capture.stop()
        if not text or not text.strip() or self.state.is_busy:
            return False

        state = self.state
        state.log.append(Message(id=state.log.new_id(), role=Role.USER, text=text))
        state.input_text = ""
        state.pending_request = True
        state.error = None
        state.phase = TurnPhase.AWAITING_RESPONSE

        intent = classify(text)
        if isinstance(intent, ImageIntent):
            await self._run_image_turn(intent.subject)
        else:
            await self._run_chat_turn(text)
        return True

    async def _run_image_turn(self, subject: str):
        state = self.state
        state.phase = TurnPhase.GENERATING_IMAGE
        self._post(THINKING_TEXT)
        self.speak(THINKING_TEXT)

        try:
            image_bytes = await self.backend.generate_image(subject)
            if not image_bytes:
                raise ImageBackendFailure("No image data found in the response.")
        except Exception as e:
            failure = e if isinstance(e, ImageBackendFailure) else ImageBackendFailure(str(e))
            if failure is not e:
                failure.__cause__ = e
            print(f"⚠️  Image turn failed: {e}")
            self._fail(failure)
        else:
            self._post(IMAGE_READY_TEXT, image_url=to_data_uri(image_bytes))
            self.speak(IMAGE_READY_TEXT)
        finally:
            state.pending_request = False
            state.phase = TurnPhase.IDLE

    async def _run_chat_turn(self, text: str):
        state = self.state
        buffer = ""
        try:
            if state.backend_session is None:
                persona = get_persona(state.active_personality)
                state.backend_session = self.backend.create_chat_session(persona.system_instruction)
            stream = await self.backend.stream_chat(state.backend_session, text)

            # Stream is open: drop the thinking indicator before any text arrives
            state.pending_request = False
            message_id = state.log.new_id()
            state.log.append(Message(id=message_id, role=Role.MODEL, text=""))
            state.streaming_message_id = message_id
            state.phase = TurnPhase.STREAMING

            async for fragment in stream:
                if not fragment:
                    continue
                buffer += fragment
                state.log.replace_text(message_id, buffer)
        except Exception as e:
            failure = e if isinstance(e, ChatBackendFailure) else ChatBackendFailure(str(e))
            if failure is not e:
                failure.__cause__ = e
            print(f"⚠️  Chat turn failed: {e}")
            self._fail(failure, before_speaking=self._end_stream)
        else:
            self._end_stream()
            self.speak(buffer)

    def _end_stream(self):
        self.state.streaming_message_id = None
        self.state.pending_request = False
        self.state.phase = TurnPhase.IDLE

    def _post(self, text: str, image_url: str = None) -> Message:
        message = Message(id=self.state.log.new_id(), role=Role.MODEL, text=text, image_url=image_url)
        self.state.log.append(message)
        return message

    def _fail(self, failure: CompanionError, before_speaking: Callable[[], None] = None):
        """Apologize in the conversation and raise the error banner."""
        self._post(failure.user_message)
        self.state.error = failure
        if before_speaking is not None:
            before_speaking()
        self.speak(failure.user_message)

    # ========== VOICE ==========

    def speak(self, text: str):
        """Fire-and-forget speech for `text` (respects the voice toggle)."""
        if self.voice is None:
            return
        self.voice.speak_async(text, enabled=self.state.voice_output_enabled)

    def greet(self):
        """Say the greeting out loud when it is the only thing in the conversation."""
        log = self.state.log
        if len(log) == 1 and log[0].role == Role.MODEL:
            self.speak(log[0].text)

    async def wait_for_speech(self):
        if self.voice is not None:
            await self.voice.wait_until_done()

    def toggle_recording(self) -> bool:
        """
        Start or stop voice input.

        Returns:
            False when voice input isn't available on this device
        """
        if self.capture is None:
            return False
        if self.capture.is_recording:
            self.capture.stop()
        else:
            self.state.input_text = ""
            self.state.error = None
            self.capture.start()
        return True

    # ========== USER ACTIONS ==========

    def react(self, message_id: int, token: str):
        self.state.log.toggle_reaction(message_id, token)

    def toggle_favorite(self, message_id: int):
        self.state.log.toggle_favorite(message_id)

    def favorites(self) -> FavoritesView:
        return self.state.log.favorites()

    def toggle_voice_output(self) -> bool:
        enabled = not self.state.voice_output_enabled
        self.memory.set_voice_output(self.state, enabled)
        return enabled

    def set_avatar_from_file(self, path: str) -> bool:
        """
        Use an image file as the user's profile picture.

        Returns:
            False when the file couldn't be read (the error banner is raised)
        """
        try:
            avatar = load_avatar(path)
        except CompanionError as e:
            self.state.error = e
            return False
        self.memory.set_avatar(self.state, avatar)
        return True

    def clear_avatar(self):
        self.memory.set_avatar(self.state, None)

    def switch_personality(self, personality: Personality) -> bool:
        changed = self.memory.switch_personality(self.state, personality)
        if changed:
            self.greet()
        return changed

    def clear_chat(self, confirm: Callable[[str], Any]) -> bool:
        """
        Wipe the conversation after the user confirms.

        Args:
            confirm: Shown CLEAR_CHAT_WARNING; must return True to proceed

        Returns:
            True if the conversation was cleared
        """
        if not confirm(CLEAR_CHAT_WARNING):
            return False
        self.memory.clear_chat(self.state)
        self.greet()
        return True

    def dismiss_error(self):
        self.state.error = None
