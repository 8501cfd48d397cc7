"""
Companion Intent Module
=======================
Decides whether a user message is a request for a picture.

This is a deliberately narrow pattern, not language understanding. The
request has to START with the phrase:

    "Generate an image of a sunset"   -> image ("sunset")
    "draw a picture of home"          -> image ("home")
    "Can you generate an image of..." -> chat (phrase is not at the start)

Missing a creative phrasing is fine - the message just goes to chat.
Mistaking an ordinary sentence for an image request is not.
"""

import re
from typing import NamedTuple, Union


IMAGE_REQUEST_PATTERN = re.compile(
    r"^(generate|create|draw|paint|show me)\s+(an? image|a picture)\s+of\s+(?:an?\s+)?(.+)",
    re.IGNORECASE,
)


class ImageIntent(NamedTuple):
    subject: str
    kind: str = "image"


class ChatIntent(NamedTuple):
    kind: str = "chat"


Intent = Union[ImageIntent, ChatIntent]


def classify(raw_text: str) -> Intent:
    """
    Tag a user utterance as an image request or ordinary chat.

    Args:
        raw_text: What the user typed or said

    Returns:
        ImageIntent(subject) when the message asks for a picture, else ChatIntent()
    """
    match = IMAGE_REQUEST_PATTERN.match((raw_text or "").strip())
    if match:
        return ImageIntent(subject=match.group(3).strip())
    return ChatIntent()
