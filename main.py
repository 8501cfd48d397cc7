#!/usr/bin/env python3
"""
Luna - AI Companion
===================
A companion chat in your terminal:
1. Streaming Gemini replies, printed as they arrive
2. Three personalities (Caring, Playful, Intellectual)
3. Pictures on request ("draw a picture of a cat in a hat")
4. Spoken replies and voice input when the machine has the hardware
5. Reactions, favorites and a profile picture, all kept between runs

Usage:
    python3 main.py                          # Start chatting
    python3 main.py --personality playful    # Start as Playful Luna
    python3 main.py --no-voice-output        # Keep her quiet

Type /help in the chat for commands.
"""

import asyncio
import sys

from google import genai

from companion_artist import CompanionArtist
from companion_brain import CompanionBrain
from companion_config import Capabilities, CompanionConfig, detect_capabilities, load_config
from companion_coordinator import CLEAR_CHAT_WARNING, ResponseCoordinator
from companion_errors import CompanionError, MissingCredentialError, describe
from companion_log import ConversationLog, Message, Role
from companion_memory import CompanionMemory
from companion_personas import Personality, parse_personality
from companion_senses import MicrophoneRecognitionEngine, SpeechCapture
from companion_store import JsonFileStore
from companion_voice import CompanionVoice


HELP_TEXT = """
  Commands:
    /persona <name>      Switch personality (Caring, Playful, Intellectual)
    /clear               Clear the conversation
    /favorites           Show favorite messages
    /fav <id>            Toggle favorite on a message
    /react <id> <emoji>  Toggle a reaction on a message
    /voice               Turn spoken replies on/off
    /avatar [path]       Set your profile picture (no path = remove it)
    /record              Start/stop voice input (Enter sends what was heard)
    /help                Show this help
    /quit                Say goodbye
"""


class LunaCompanion:
    """
    Wires Luna together and runs the terminal chat.
    """

    def __init__(self, config: CompanionConfig, capabilities: Capabilities):
        print("=" * 60)
        print("  🌙 LUNA - AI Companion")
        print("  Initializing...")
        print("=" * 60)
        print()

        self.config = config
        self.capabilities = capabilities

        print("📦 Initializing components...")
        self.store = JsonFileStore(config.store_path)
        self.memory = CompanionMemory(self.store, default_personality=config.default_personality)
        self.state = self.memory.restore()

        # One client shared by chat, speech and images
        client = genai.Client(api_key=config.api_key)
        artist = CompanionArtist(
            client=client,
            model=config.image_model,
            output_dir=config.art_dir,
            max_retries=config.max_retries,
        )
        self.brain = CompanionBrain(
            api_key=config.api_key,
            chat_model=config.chat_model,
            tts_model=config.tts_model,
            voice_name=config.tts_voice,
            artist=artist,
            max_retries=config.max_retries,
            client=client,
        )
        self.voice = CompanionVoice(self.brain, available=capabilities.voice_output)
        self.coordinator = ResponseCoordinator(self.state, self.memory, self.brain, voice=self.voice)

        # What has already been printed of the newest message
        self._shown_id = None
        self._shown_len = 0
        self.state.log.subscribe(self._on_log_change)

        print()
        print("=" * 60)
        print(f"  ✨ Luna is ready ({self.state.active_personality.value})")
        print("=" * 60)
        print()

    # ========== VOICE INPUT ==========

    def _attach_microphone(self):
        """Voice input needs the running loop, so it is wired up from run()."""
        if not self.capabilities.voice_capture:
            print("   🎙️  Voice input: DISABLED")
            return
        capture = SpeechCapture(
            MicrophoneRecognitionEngine(loop=asyncio.get_running_loop()),
            on_transcript=self._on_transcript,
            on_error=self.coordinator.on_capture_error,
            on_recording_changed=self.coordinator.on_recording_changed,
        )
        self.coordinator.attach_capture(capture)
        print("   🎙️  Voice input: ENABLED (/record)")

    def _on_transcript(self, transcript: str):
        self.coordinator.on_transcript(transcript)
        print(f"\n   🎙️  Heard: \"{transcript}\"")

    # ========== OUTPUT ==========

    def _on_log_change(self, log: ConversationLog):
        """Print new model text as it streams in."""
        if not len(log):
            return
        last = log[-1]
        is_new = last.id != self._shown_id
        if is_new:
            self._shown_id = last.id
            self._shown_len = 0
            if last.role != Role.MODEL:
                self._shown_len = len(last.text)
                return
            print(f"\n💬 Luna [{last.id}]: ", end="", flush=True)
        if len(last.text) > self._shown_len:
            print(last.text[self._shown_len:], end="", flush=True)
            self._shown_len = len(last.text)
        if is_new and last.image_url:
            print(f"\n   🖼️  [image, {len(last.image_url) // 1024} KB data URI]", end="", flush=True)

    def _print_message(self, message: Message):
        who = "Luna" if message.role == Role.MODEL else "You"
        badges = " ⭐" if message.is_favorite else ""
        if message.reactions:
            badges += " " + "".join(message.reactions)
        print(f"   [{message.id}] {who}: {message.text}{badges}")

    def _show_greeting(self):
        log = self.state.log
        self._shown_id = log[-1].id
        self._shown_len = len(log[-1].text)
        print("-" * 50)
        for message in log:
            self._print_message(message)
        print("-" * 50)

    def _show_error(self):
        if self.state.error is not None:
            print(f"\n⚠️  {describe(self.state.error)}")
            self.coordinator.dismiss_error()

    # ========== INPUT ==========

    async def _ask(self, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, input, prompt)
        except EOFError:
            return "/quit"

    async def _handle_command(self, line: str) -> bool:
        """
        Run a slash command.

        Returns:
            False when the user wants to leave
        """
        parts = line.split()
        command, args = parts[0].lower(), parts[1:]

        if command == "/quit":
            return False

        if command == "/help":
            print(HELP_TEXT)

        elif command == "/persona":
            personality = parse_personality(args[0] if args else None)
            if personality is None:
                names = ", ".join(p.value for p in Personality)
                print(f"   Choose one of: {names}")
            elif self.coordinator.switch_personality(personality):
                print(f"   🎭 Switched to {personality.value}")
                self._show_greeting()
            else:
                print(f"   Already {personality.value}")

        elif command == "/clear":
            answer = (await self._ask(f"{CLEAR_CHAT_WARNING} [y/N] ")).strip().lower()
            if self.coordinator.clear_chat(lambda warning: answer in ("y", "yes")):
                print("   🧹 Conversation cleared")
                self._show_greeting()

        elif command == "/favorites":
            favorites = self.coordinator.favorites()
            if not favorites:
                print("   No favorites yet")
            for message in favorites:
                self._print_message(message)

        elif command in ("/fav", "/react"):
            try:
                message_id = int(args[0])
            except (IndexError, ValueError):
                print(f"   Usage: {command} <id>{' <emoji>' if command == '/react' else ''}")
                return True
            if command == "/fav":
                self.coordinator.toggle_favorite(message_id)
            elif len(args) > 1:
                self.coordinator.react(message_id, args[1])
            message = self.state.log.get(message_id)
            if message is None:
                print(f"   No message {message_id}")
            else:
                self._print_message(message)

        elif command == "/voice":
            enabled = self.coordinator.toggle_voice_output()
            print(f"   {'🔊 Voice ON' if enabled else '🔇 Voice OFF'}")

        elif command == "/avatar":
            if not args:
                self.coordinator.clear_avatar()
                print("   Profile picture removed")
            elif self.coordinator.set_avatar_from_file(" ".join(args)):
                print("   🖼️  Profile picture updated")

        elif command == "/record":
            if not self.coordinator.toggle_recording():
                print("   Voice input isn't available on this machine")

        else:
            print(f"   Unknown command {command} (try /help)")

        self._show_error()
        return True

    # ========== MAIN LOOP ==========

    async def run(self):
        """Main conversation loop."""
        self._attach_microphone()

        requested = self.config.requested_personality
        # A startup switch already says the new greeting
        switched = requested is not None and self.coordinator.switch_personality(requested)

        self._show_greeting()
        if not switched:
            self.coordinator.greet()
        print("   Type a message and press Enter. /help for commands.\n")

        try:
            while True:
                line = await self._ask("You: ")
                stripped = line.strip()

                # Enter on an empty line sends what voice input heard
                if not stripped and self.state.input_text:
                    line = self.state.input_text
                    stripped = line.strip()

                if stripped.startswith("/"):
                    if not await self._handle_command(stripped):
                        break
                    continue

                if await self.coordinator.submit(line):
                    print()
                self._show_error()

        except KeyboardInterrupt:
            pass

        finally:
            print("\n\n👋 Goodnight, see you soon...")
            if self.coordinator.capture is not None:
                self.coordinator.capture.stop()
            await self.coordinator.wait_for_speech()
            self.voice.shutdown()


async def main(argv=None):
    """Entry point."""
    try:
        config = load_config(argv)
    except MissingCredentialError as e:
        print(f"❌ {e.user_message}")
        sys.exit(1)

    companion = LunaCompanion(config, detect_capabilities(config))
    try:
        await companion.run()
    except CompanionError as e:
        print(f"❌ {describe(e)}")
        sys.exit(1)


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
