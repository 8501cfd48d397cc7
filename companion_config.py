"""
Companion Config Module
=======================
Everything Luna needs to know before she wakes up:

- Settings from the environment (.env is loaded first)
- Command line overrides

    python3 main.py                          # defaults from .env
    python3 main.py --personality playful    # start as Playful Luna
    python3 main.py --store ~/luna.json      # keep the session elsewhere
    python3 main.py --no-voice-input         # keyboard only
    python3 main.py --no-voice-output        # Luna stays silent

- Device capabilities (microphone / speaker), checked once at startup
"""

import argparse
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

from companion_errors import MissingCredentialError
from companion_personas import DEFAULT_PERSONALITY, Personality, parse_personality


@dataclass(frozen=True)
class Capabilities:
    """What this machine can do with sound."""
    voice_capture: bool
    voice_output: bool


@dataclass(frozen=True)
class CompanionConfig:
    api_key: str
    chat_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.5-flash-image"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Kore"
    store_path: str = "luna_session.json"
    art_dir: Optional[str] = None
    default_personality: Personality = DEFAULT_PERSONALITY
    max_retries: int = 3
    voice_input: bool = True
    voice_output: bool = True
    # Set only by --personality: switch to it even if another one was saved
    requested_personality: Optional[Personality] = None


def _has_device(kind: str) -> bool:
    try:
        import sounddevice as sd
        sd.query_devices(kind=kind)
        return True
    except Exception as e:
        print(f"⚠️  No {kind} audio device: {e}")
        return False


def detect_capabilities(config: CompanionConfig = None) -> Capabilities:
    """
    Check for a microphone and a speaker.

    Options turned off in the config count as missing devices.
    """
    voice_input = config.voice_input if config else True
    voice_output = config.voice_output if config else True
    return Capabilities(
        voice_capture=voice_input and _has_device('input'),
        voice_output=voice_output and _has_device('output'),
    )


def parse_args(argv: List[str] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Luna - your AI companion",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Personalities:
  Caring        Warm, supportive and affectionate (DEFAULT)
  Playful       Witty, teasing and fun
  Intellectual  Thoughtful, curious and eloquent
        """
    )
    parser.add_argument(
        '--personality',
        help='Personality to start with (Caring, Playful, Intellectual)'
    )
    parser.add_argument(
        '--store',
        help='Session file (default: luna_session.json)'
    )
    parser.add_argument(
        '--no-voice-input',
        action='store_true',
        help='Disable microphone input'
    )
    parser.add_argument(
        '--no-voice-output',
        action='store_true',
        help='Disable spoken replies'
    )
    return parser.parse_args(argv)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(1, int(raw))
    except ValueError:
        print(f"⚠️  Ignoring invalid {name}={raw!r}, using {default}")
        return default


def load_config(argv: List[str] = None) -> CompanionConfig:
    """
    Build the configuration from .env, the environment and the command line.

    Raises:
        MissingCredentialError: if GOOGLE_API_KEY is not set
    """
    load_dotenv()
    args = parse_args(argv)

    api_key = os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise MissingCredentialError("GOOGLE_API_KEY not set")

    personality_name = args.personality or os.getenv("LUNA_DEFAULT_PERSONALITY")
    personality = parse_personality(personality_name)
    if personality_name and personality is None:
        print(f"⚠️  Unknown personality {personality_name!r}, using {DEFAULT_PERSONALITY.value}")

    return CompanionConfig(
        api_key=api_key,
        chat_model=os.getenv("LUNA_CHAT_MODEL", "gemini-2.5-flash"),
        image_model=os.getenv("LUNA_IMAGE_MODEL", "gemini-2.5-flash-image"),
        tts_model=os.getenv("LUNA_TTS_MODEL", "gemini-2.5-flash-preview-tts"),
        tts_voice=os.getenv("LUNA_TTS_VOICE", "Kore"),
        store_path=args.store or os.getenv("LUNA_STORE_PATH", "luna_session.json"),
        art_dir=os.getenv("LUNA_ART_DIR") or None,
        default_personality=personality or DEFAULT_PERSONALITY,
        max_retries=_int_env("LUNA_MAX_RETRIES", 3),
        voice_input=not args.no_voice_input,
        voice_output=not args.no_voice_output,
        requested_personality=parse_personality(args.personality),
    )
