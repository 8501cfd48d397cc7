"""
Shared helpers for talking to Gemini through the google-genai SDK.

When Google's servers are overloaded (503) Luna gets "lost in thought" for a
moment: the call is retried with exponential backoff instead of failing the
turn outright.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from google.genai import types


SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
]


def is_overloaded_error(error: Exception) -> bool:
    """Check if an exception is a 503 overload error."""
    error_str = str(error)
    return '503' in error_str or 'UNAVAILABLE' in error_str or 'overloaded' in error_str.lower()


async def call_with_retry(make_call: Callable[[], Awaitable[Any]],
                          max_retries: int = 3,
                          base_delay: float = 2.0) -> Any:
    """
    Await `make_call()`, retrying with exponential backoff while Gemini is overloaded.

    Only 503/overload errors are retried; anything else is raised at once.

    Args:
        make_call: Zero-argument callable returning a fresh awaitable per attempt
        max_retries: Total number of attempts
        base_delay: First backoff in seconds (doubles each retry)
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await make_call()
        except Exception as e:
            if not is_overloaded_error(e) or attempt >= max_retries:
                raise
            backoff = base_delay * (2 ** (attempt - 1))
            print(f"   💭 Lost in thought... (retry {attempt}/{max_retries - 1} in {backoff:.0f}s)")
            await asyncio.sleep(backoff)


def first_inline_data(response) -> Optional[bytes]:
    """Pull the first inline binary payload out of a generate_content response."""
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                return inline.data
    return None
