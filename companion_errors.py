"""
Companion Errors Module
=======================
The things that can go wrong while talking to Luna.

Every error carries a `user_message`: the in-character line shown in the
error banner. Backend failures are recoverable (the conversation continues),
speech failures are only ever logged, and a missing credential is fatal at
startup.
"""

from typing import Optional


class CompanionError(Exception):
    """Base class for every error the companion can surface."""

    user_message = "Oh, honey... something went wrong. Please try again later."

    def __init__(self, detail: str = None):
        super().__init__(detail or self.user_message)
        self.detail = detail


class RecognitionDenied(CompanionError):
    """Microphone permission was refused."""

    user_message = "I'd love to hear your voice, but I need microphone permission first, sweetie."


class RecognitionFailed(CompanionError):
    """Speech capture failed for any reason other than a denied permission."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    @property
    def user_message(self) -> str:
        return f"Oops, voice recognition failed: {self.reason}"


class ChatBackendFailure(CompanionError):
    user_message = "Oh, honey... something went wrong. Please try again later."


class ImageBackendFailure(CompanionError):
    user_message = (
        "Oh, darling... I tried my best, but I couldn't create the image. "
        "Maybe we can try something else?"
    )


class SpeechBackendFailure(CompanionError):
    """Speech synthesis or playback failed. Never shown to the user."""


class ProfileImageReadFailure(CompanionError):
    user_message = "Couldn't read the image file, my dear. Please try another one."


class MissingCredentialError(CompanionError):
    user_message = (
        "GOOGLE_API_KEY not set. "
        "Get one from https://aistudio.google.com/apikey"
    )


def recognition_error_for(code: str) -> CompanionError:
    """
    Map a recognition engine error code to the matching companion error.

    Args:
        code: Engine error code, e.g. "not-allowed", "network", "audio-capture"

    Returns:
        RecognitionDenied for a refused permission, RecognitionFailed otherwise
    """
    if code == "not-allowed":
        return RecognitionDenied(code)
    return RecognitionFailed(code)


def describe(error: Optional[Exception]) -> str:
    """Banner text for an error (empty when there is none)."""
    if error is None:
        return ""
    if isinstance(error, CompanionError):
        return error.user_message
    return str(error)
