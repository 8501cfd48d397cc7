"""
Companion Brain Module (google-genai SDK)
=========================================
Luna's connection to Gemini:
- Chat sessions that carry the persona as system instruction
- Streaming replies, fragment by fragment
- Speech synthesis (her voice)

Image generation lives in companion_artist.py; the brain hands image
requests over to the artist so the coordinator only ever talks to one
backend object.

Every failure leaves this module as one of the companion errors
(ChatBackendFailure, ImageBackendFailure, SpeechBackendFailure) with the
provider's exception chained as the cause.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from google import genai
from google.genai import types

from companion_artist import CompanionArtist
from companion_errors import ChatBackendFailure, SpeechBackendFailure
from companion_gemini import SAFETY_SETTINGS, call_with_retry, first_inline_data


# TTS output format: mono, 24kHz, signed 16-bit little-endian PCM
SPEECH_SAMPLE_RATE = 24000


class ChatBackend(ABC):
    """What the coordinator needs from an AI provider."""

    @abstractmethod
    def create_chat_session(self, system_instruction: str) -> Any:
        """Open a conversation that speaks with the given persona."""
        pass

    @abstractmethod
    async def stream_chat(self, session: Any, message: str) -> AsyncIterator[str]:
        """Send a message; awaiting returns an async stream of text fragments."""
        pass

    @abstractmethod
    async def generate_image(self, prompt: str) -> bytes:
        pass

    @abstractmethod
    async def synthesize_speech(self, text: str) -> bytes:
        pass


class CompanionBrain(ChatBackend):
    """
    Gemini-backed implementation of ChatBackend.
    """

    def __init__(self,
                 api_key: str,
                 chat_model: str = "gemini-2.5-flash",
                 tts_model: str = "gemini-2.5-flash-preview-tts",
                 voice_name: str = "Kore",
                 artist: Optional[CompanionArtist] = None,
                 max_retries: int = 3,
                 client: Optional[genai.Client] = None):
        """
        Args:
            api_key: Google API key
            chat_model: Model used for conversation
            tts_model: Model used for speech synthesis
            voice_name: Prebuilt Gemini voice for Luna
            artist: Image generator (created on the same client when omitted)
            max_retries: Attempts per call while the API is overloaded
            client: Pre-built genai client (mostly for tests)
        """
        self.client = client or genai.Client(api_key=api_key)
        self.chat_model = chat_model
        self.tts_model = tts_model
        self.voice_name = voice_name
        self.max_retries = max_retries
        self.artist = artist or CompanionArtist(client=self.client, max_retries=max_retries)

        print(f"🧠 Companion brain initialized ({self.chat_model})")
        print(f"   🎨 Images: {self.artist.model}")
        print(f"   🗣️  Voice: {self.tts_model} ({self.voice_name})")

    # ========== CHAT ==========

    def create_chat_session(self, system_instruction: str) -> Any:
        """Open a multi-turn chat that speaks with the given persona."""
        return self.client.aio.chats.create(
            model=self.chat_model,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                safety_settings=SAFETY_SETTINGS,
            ),
        )

    async def stream_chat(self, session: Any, message: str) -> AsyncIterator[str]:
        """
        Send a message and return the reply as an async stream of text fragments.

        Awaiting this establishes the stream; iterating it yields the text.

        Raises:
            ChatBackendFailure: if the stream can't be opened (raised here) or
                breaks while being read (raised from the iterator)
        """
        try:
            stream = await call_with_retry(
                lambda: session.send_message_stream(message),
                max_retries=self.max_retries,
            )
        except Exception as e:
            print(f"⚠️  Error sending message to Gemini: {e}")
            raise ChatBackendFailure("Failed to get response from AI.") from e
        return self._fragments(stream)

    async def _fragments(self, stream) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                text = chunk.text
                if text:
                    yield text
        except Exception as e:
            print(f"⚠️  Gemini stream interrupted: {e}")
            raise ChatBackendFailure("The response stream was interrupted.") from e

    # ========== IMAGES ==========

    async def generate_image(self, prompt: str) -> bytes:
        return await self.artist.create_image(prompt)

    # ========== SPEECH ==========

    async def synthesize_speech(self, text: str) -> bytes:
        """
        Turn text into Luna's spoken voice.

        Returns:
            Raw PCM audio (mono, 24kHz, 16-bit)

        Raises:
            SpeechBackendFailure: on API errors or when no audio comes back
        """
        try:
            response = await call_with_retry(
                lambda: self.client.aio.models.generate_content(
                    model=self.tts_model,
                    contents=f"Say it in a warm, friendly, and caring tone: {text}",
                    config=types.GenerateContentConfig(
                        response_modalities=["AUDIO"],
                        speech_config=types.SpeechConfig(
                            voice_config=types.VoiceConfig(
                                prebuilt_voice_config=types.PrebuiltVoiceConfig(
                                    voice_name=self.voice_name,
                                )
                            )
                        ),
                    ),
                ),
                max_retries=self.max_retries,
            )
        except Exception as e:
            raise SpeechBackendFailure("Failed to generate speech from AI.") from e

        audio = first_inline_data(response)
        if not audio:
            raise SpeechBackendFailure("No audio data found in the TTS response.")
        return audio

