import pytest

from companion_errors import (
    ChatBackendFailure,
    RecognitionDenied,
    RecognitionFailed,
    describe,
    recognition_error_for,
)
from companion_personas import DEFAULT_PERSONALITY, PERSONAS, Personality, get_persona, parse_personality


def test_every_personality_has_a_persona():
    assert set(PERSONAS) == set(Personality)
    for personality in Personality:
        persona = get_persona(personality)
        assert persona.personality == personality
        assert "Luna" in persona.system_instruction
        assert persona.greeting


def test_default_is_caring():
    assert DEFAULT_PERSONALITY == Personality.CARING


@pytest.mark.parametrize("value, expected", [
    ("Playful", Personality.PLAYFUL),
    ("  intellectual ", Personality.INTELLECTUAL),
    ("CARING", Personality.CARING),
    ("Grumpy", None),
    ("", None),
    (None, None),
])
def test_parse_personality(value, expected):
    assert parse_personality(value) == expected


def test_recognition_error_mapping():
    assert isinstance(recognition_error_for("not-allowed"), RecognitionDenied)
    failed = recognition_error_for("no-speech")
    assert isinstance(failed, RecognitionFailed)
    assert failed.user_message == "Oops, voice recognition failed: no-speech"


def test_describe():
    assert describe(None) == ""
    assert describe(ChatBackendFailure("raw provider text")) == ChatBackendFailure.user_message
    assert describe(ValueError("plain")) == "plain"
