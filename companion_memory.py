"""
Companion Memory Module
=======================
Brings Luna's session back after a restart and keeps it saved while it runs:
- Active personality
- Conversation history
- Voice output preference
- User's profile picture

On startup the store is read and a SessionState is built. Anything missing,
unknown or corrupt falls back to a sensible default - the worst case is a
fresh greeting, never a crash.

While the session runs, every change to the conversation is mirrored back
into the store. An empty conversation is never written, so a glitch that
empties the log can't wipe out the saved history.

Saving is best-effort: a failed write is logged and the session carries on
with its in-memory state.
"""

import json
from typing import List, Optional

from companion_log import ConversationLog, Message, MessageIdGenerator, Role
from companion_personas import DEFAULT_PERSONALITY, Personality, get_persona, parse_personality
from companion_state import SessionState
from companion_store import CompanionStore


PERSONALITY_KEY = "personality"
HISTORY_KEY = "chat-history"
TTS_KEY = "tts-enabled"
AVATAR_KEY = "user-profile-picture"


class CompanionMemory:
    """
    Session lifecycle manager: restore, reset and persist the SessionState.
    """

    def __init__(self,
                 store: CompanionStore,
                 default_personality: Personality = DEFAULT_PERSONALITY,
                 id_generator: MessageIdGenerator = None):
        """
        Args:
            store: Where the session is persisted
            default_personality: Persona used when none (or an unknown one) is stored
            id_generator: Message id source (a fresh one by default)
        """
        self.store = store
        self.default_personality = default_personality
        self.id_generator = id_generator or MessageIdGenerator()

    # ========== STARTUP ==========

    def restore(self) -> SessionState:
        """
        Build the session from whatever the store holds.

        Returns:
            A SessionState whose log is already mirrored into the store
        """
        personality = self._restore_personality()
        messages = self._restore_history()

        log = ConversationLog(id_generator=self.id_generator)
        if messages:
            log.reset(messages, notify=False)
            print(f"📚 Restored conversation ({len(messages)} messages, {personality.value})")
        else:
            log.reset([self.greeting_for(personality)], notify=False)
            print(f"📚 Starting fresh with the {personality.value} greeting")

        state = SessionState(
            active_personality=personality,
            log=log,
            voice_output_enabled=self._restore_tts(),
            user_avatar=self.store.get(AVATAR_KEY) or None,
        )

        log.subscribe(self._save_history)
        self._save_history(log)
        self._save(PERSONALITY_KEY, personality.value)
        return state

    def _restore_personality(self) -> Personality:
        stored = self.store.get(PERSONALITY_KEY)
        personality = parse_personality(stored)
        if personality is None:
            if stored:
                print(f"⚠️  Unknown personality {stored!r} in store - using {self.default_personality.value}")
            return self.default_personality
        return personality

    def _restore_history(self) -> List[Message]:
        raw = self.store.get(HISTORY_KEY)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            print(f"⚠️  Could not load chat history: {e}")
            return []
        if not isinstance(entries, list) or not entries:
            return []

        # Legacy entries may lack an id; give them base + index
        base = self.id_generator.next_id()
        try:
            messages = []
            for i, entry in enumerate(entries):
                if isinstance(entry, dict) and not entry.get("id"):
                    entry = dict(entry, id=base + i)
                messages.append(Message.from_dict(entry))
        except ValueError as e:
            print(f"⚠️  Could not load chat history: {e}")
            return []
        return self._deduplicate_ids(messages)

    def _deduplicate_ids(self, messages: List[Message]) -> List[Message]:
        seen = set()
        for message in messages:
            self.id_generator.observe(message.id)
        for message in messages:
            if message.id in seen:
                message.id = self.id_generator.next_id()
            seen.add(message.id)
        return messages

    def _restore_tts(self) -> bool:
        raw = self.store.get(TTS_KEY)
        if raw is None:
            return True
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            print(f"⚠️  Ignoring unreadable voice setting {raw!r}")
            return True
        return bool(value)

    # ========== RESETS ==========

    def greeting_for(self, personality: Personality) -> Message:
        """A fresh copy of the persona's greeting with a new id."""
        return Message(
            id=self.id_generator.next_id(),
            role=Role.MODEL,
            text=get_persona(personality).greeting,
        )

    def switch_personality(self, state: SessionState, personality: Personality) -> bool:
        """
        Change persona. Destroys the current conversation.

        Returns:
            False when the persona is already active (nothing happens)
        """
        if personality == state.active_personality:
            return False
        state.active_personality = personality
        self._reset(state)
        self._save(PERSONALITY_KEY, personality.value)
        print(f"💫 Personality switched to {personality.value}")
        return True

    def clear_chat(self, state: SessionState):
        """Start over with the current persona's greeting."""
        self._reset(state)
        print("🗑️  Conversation cleared")

    def _reset(self, state: SessionState):
        state.backend_session = None
        state.log.reset([self.greeting_for(state.active_personality)], notify=False)
        self._delete(HISTORY_KEY)

    # ========== SETTINGS ==========

    def set_voice_output(self, state: SessionState, enabled: bool):
        state.voice_output_enabled = enabled
        self._save(TTS_KEY, json.dumps(enabled))

    def set_avatar(self, state: SessionState, avatar: Optional[str]):
        state.user_avatar = avatar
        if avatar:
            self._save(AVATAR_KEY, avatar)
        else:
            self._delete(AVATAR_KEY)

    # ========== PERSISTENCE ==========

    def _save_history(self, log: ConversationLog):
        if len(log) == 0:
            return
        self._save(HISTORY_KEY, json.dumps(log.to_list(), ensure_ascii=False))

    def _save(self, key: str, value: str):
        try:
            self.store.set(key, value)
        except Exception as e:
            print(f"⚠️  Could not save {key}: {e}")

    def _delete(self, key: str):
        try:
            self.store.delete(key)
        except Exception as e:
            print(f"⚠️  Could not remove {key}: {e}")
