"""
Companion Voice Module
======================
Luna's spoken voice.

Text is synthesized by the backend (Gemini TTS: raw mono 24kHz 16-bit PCM),
decoded with numpy and played through pygame's mixer on a worker thread.

Voice is an enhancement, not the conversation itself:
- speaking never blocks the caller (speak_async schedules a task)
- a failure anywhere in synthesis, decoding or playback is logged and dropped
"""

import asyncio
import threading
import time
from typing import Optional, Set

import numpy as np
import pygame

from companion_brain import SPEECH_SAMPLE_RATE, ChatBackend
from companion_errors import SpeechBackendFailure


def decode_pcm16(audio_bytes: bytes) -> np.ndarray:
    """
    Decode raw little-endian 16-bit PCM into an int16 sample array.

    A trailing odd byte (half a sample) is dropped.
    """
    usable = len(audio_bytes) - (len(audio_bytes) % 2)
    return np.frombuffer(audio_bytes[:usable], dtype='<i2').astype(np.int16)


class CompanionVoice:
    """
    Text-to-speech playback for the companion.
    """

    def __init__(self,
                 backend: ChatBackend,
                 available: bool = True,
                 sample_rate: int = SPEECH_SAMPLE_RATE):
        """
        Args:
            backend: Where speech gets synthesized
            available: Whether this machine can play audio at all
            sample_rate: Sample rate of the synthesized PCM
        """
        self.backend = backend
        self.available = available
        self.sample_rate = sample_rate

        self._mixer_initialized = False
        self._mixer_lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._is_speaking = False

        if not self.available:
            print("⚠️  No audio output device found. Luna will stay silent.")

    def is_speaking(self) -> bool:
        return self._is_speaking

    def _init_mixer(self):
        """
        Initialize pygame's mixer for mono 16-bit playback (once).

        allowedchanges=0 makes SDL convert to whatever the device really
        wants instead of handing back a different format. Playback threads
        may race here, hence the lock.
        """
        with self._mixer_lock:
            if self._mixer_initialized:
                return
            pygame.mixer.init(frequency=self.sample_rate, size=-16, channels=1, allowedchanges=0)
            self._mixer_initialized = True

    async def speak(self, text: str, enabled: bool = True):
        """
        Synthesize and play `text`. Returns when playback has finished.

        Does nothing when voice output is disabled, unavailable, or the text
        is empty. Never raises.
        """
        if not text or not enabled or not self.available:
            return
        try:
            audio_bytes = await self.backend.synthesize_speech(text)
            samples = decode_pcm16(audio_bytes)
            if samples.size == 0:
                raise SpeechBackendFailure("Synthesized audio was empty.")

            print(f"🗣️  Luna: \"{text[:50]}{'...' if len(text) > 50 else ''}\"")
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._play_samples, samples)
        except Exception as e:
            print(f"⚠️  Failed to play speech: {e}")

    def _play_samples(self, samples: np.ndarray):
        """Blocking playback; runs on an executor thread."""
        self._init_mixer()
        self._is_speaking = True
        try:
            mixer = pygame.mixer.get_init()
            # The device may still have opened in stereo
            if mixer is not None and mixer[2] == 2:
                samples = np.column_stack((samples, samples))
            sound = pygame.sndarray.make_sound(np.ascontiguousarray(samples))
            channel = sound.play()
            while channel is not None and channel.get_busy():
                time.sleep(0.03)
        finally:
            self._is_speaking = False

    def speak_async(self, text: str, enabled: bool = True) -> Optional[asyncio.Task]:
        """
        Speak without blocking.

        Returns:
            The playback task, or None when there is nothing to say
        """
        if not text or not enabled or not self.available:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            print("⚠️  No event loop running, skipping speech")
            return None
        task = loop.create_task(self.speak(text, enabled))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_until_done(self):
        """Wait for every queued utterance to finish (used on shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def shutdown(self):
        if self._mixer_initialized:
            pygame.mixer.quit()
            self._mixer_initialized = False
