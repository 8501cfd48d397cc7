"""
Companion Log Module
====================
The conversation as an ordered, append-only list of messages.

Messages are never removed or reordered. The only in-place changes are:
- replacing a message's text (how a streamed reply grows)
- toggling a reaction
- toggling the favorite flag

Updates that name an id the log no longer holds are dropped silently. That
happens legitimately when a reply is still streaming while the user clears
the chat or switches persona.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


@dataclass
class Message:
    id: int
    role: Role
    text: str = ""
    reactions: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    is_favorite: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialized form, matching the stored chat-history schema."""
        data: Dict[str, Any] = {"id": self.id, "role": self.role.value, "text": self.text}
        if self.reactions:
            data["reactions"] = list(self.reactions)
        if self.image_url:
            data["imageUrl"] = self.image_url
        if self.is_favorite:
            data["isFavorite"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """
        Rebuild a message from its stored form.

        Raises:
            ValueError: if the entry is not a valid message
        """
        if not isinstance(data, dict):
            raise ValueError(f"Message entry must be an object, got {type(data).__name__}")
        try:
            role = Role(data.get("role"))
        except ValueError:
            raise ValueError(f"Unknown message role: {data.get('role')!r}")
        msg_id = data.get("id")
        if not isinstance(msg_id, int) or isinstance(msg_id, bool):
            raise ValueError(f"Message id must be an integer, got {msg_id!r}")
        text = data.get("text", "")
        if not isinstance(text, str):
            raise ValueError("Message text must be a string")
        reactions = data.get("reactions") or []
        if not isinstance(reactions, list) or not all(isinstance(r, str) for r in reactions):
            raise ValueError("Message reactions must be a list of strings")
        return cls(
            id=msg_id,
            role=role,
            text=text,
            reactions=list(reactions),
            image_url=data.get("imageUrl") or None,
            is_favorite=bool(data.get("isFavorite", False)),
        )


class MessageIdGenerator:
    """
    Hands out strictly increasing message ids.

    Ids are millisecond timestamps when the clock allows it, but never
    repeat: two ids requested within the same millisecond differ by one.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def next_id(self) -> int:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate

    def observe(self, message_id: int):
        """Make sure future ids are greater than an id already in use."""
        if message_id > self._last:
            self._last = message_id


class FavoritesView:
    """
    Live, order-preserving view of the favorite messages in a log.

    Every iteration starts over from the beginning of the log.
    """

    def __init__(self, log: "ConversationLog"):
        self._log = log

    def __iter__(self) -> Iterator[Message]:
        return (m for m in self._log if m.is_favorite)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)


class ConversationLog:
    """Ordered message list with id-addressed in-place updates."""

    def __init__(self, messages: List[Message] = None, id_generator: MessageIdGenerator = None):
        self.id_generator = id_generator or MessageIdGenerator()
        self._messages: List[Message] = []
        self._listeners: List[Callable[["ConversationLog"], None]] = []
        for message in messages or []:
            self.id_generator.observe(message.id)
            self._messages.append(message)

    # ========== READING ==========

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def get(self, message_id: int) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def favorites(self) -> FavoritesView:
        return FavoritesView(self)

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    # ========== MUTATION ==========

    def new_id(self) -> int:
        return self.id_generator.next_id()

    def append(self, message: Message):
        self.id_generator.observe(message.id)
        self._messages.append(message)
        self._notify()

    def replace_text(self, message_id: int, new_text: str):
        message = self.get(message_id)
        if message is None:
            return
        message.text = new_text
        self._notify()

    def toggle_reaction(self, message_id: int, token: str):
        """Remove one occurrence of `token` if present, otherwise add it."""
        message = self.get(message_id)
        if message is None:
            return
        if token in message.reactions:
            message.reactions.remove(token)
        else:
            message.reactions.append(token)
        self._notify()

    def toggle_favorite(self, message_id: int):
        message = self.get(message_id)
        if message is None:
            return
        message.is_favorite = not message.is_favorite
        self._notify()

    def reset(self, messages: List[Message], notify: bool = True):
        """Replace the whole conversation (used on clear and persona switch)."""
        self._messages = []
        for message in messages:
            self.id_generator.observe(message.id)
            self._messages.append(message)
        if notify:
            self._notify()

    # ========== LISTENERS ==========

    def subscribe(self, listener: Callable[["ConversationLog"], None]):
        """Call `listener(log)` after every mutation."""
        self._listeners.append(listener)

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)
