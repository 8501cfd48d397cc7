"""
Companion Senses Module
=======================
Luna's ears: turns the user's speech into text for the message composer.

Two layers:
1. SpeechCapture - the session object the coordinator talks to. Starting it
   clears the composer; every recognition result replaces the composer text
   with the full transcript so far; errors become companion errors.
2. A RecognitionEngine - the thing that actually listens. The default,
   MicrophoneRecognitionEngine, reads the microphone with sounddevice,
   cuts phrases with a smoothed-RMS voice activity detector and transcribes
   each phrase with Google Speech Recognition.

Engines report through four callbacks (on_start, on_end, on_result,
on_error). The microphone engine calls them from its own threads, so it hops
back onto the asyncio loop with call_soon_threadsafe first.
"""

import asyncio
import os
import queue
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, List, Optional

import numpy as np
import speech_recognition as sr
from scipy.io import wavfile

from companion_errors import CompanionError, recognition_error_for


# One result segment = list of alternatives, best guess first
ResultSegments = List[List[str]]


class RecognitionEngine(ABC):
    """
    Interface for continuous, interim-results speech recognition.

    Set the callbacks, then start()/stop(). Results are cumulative: every
    on_result call carries all segments recognized since start().
    """

    def __init__(self):
        self.on_start: Callable[[], None] = lambda: None
        self.on_end: Callable[[], None] = lambda: None
        self.on_result: Callable[[ResultSegments], None] = lambda segments: None
        self.on_error: Callable[[str], None] = lambda code: None

    @abstractmethod
    def start(self):
        pass

    @abstractmethod
    def stop(self):
        pass


def best_transcript(segments: ResultSegments) -> str:
    """Join the top alternative of every segment."""
    return "".join(alternatives[0] for alternatives in segments if alternatives)


class SpeechCapture:
    """
    One voice capture session feeding the message composer.
    """

    def __init__(self,
                 engine: RecognitionEngine,
                 on_transcript: Callable[[str], None],
                 on_error: Callable[[CompanionError], None],
                 on_recording_changed: Callable[[bool], None] = None):
        """
        Args:
            engine: The recognizer to drive
            on_transcript: Receives the full transcript after every result
            on_error: Receives RecognitionDenied / RecognitionFailed
            on_recording_changed: Told when recording starts and stops
        """
        self.engine = engine
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_recording_changed = on_recording_changed or (lambda recording: None)
        self.is_recording = False

        engine.on_start = self._handle_start
        engine.on_end = self._handle_end
        engine.on_result = self._handle_result
        engine.on_error = self._handle_error

    def start(self):
        if self.is_recording:
            return
        self.engine.start()

    def stop(self):
        if not self.is_recording:
            return
        self.engine.stop()

    def toggle(self):
        if self.is_recording:
            self.stop()
        else:
            self.start()

    # ========== ENGINE CALLBACKS ==========

    def _set_recording(self, recording: bool):
        if recording != self.is_recording:
            self.is_recording = recording
            self._on_recording_changed(recording)

    def _handle_start(self):
        self._set_recording(True)

    def _handle_end(self):
        self._set_recording(False)

    def _handle_result(self, segments: ResultSegments):
        self._on_transcript(best_transcript(segments))

    def _handle_error(self, code: str):
        print(f"⚠️  Speech recognition error: {code}")
        self.engine.stop()
        self._set_recording(False)
        self._on_error(recognition_error_for(code))


class MicrophoneRecognitionEngine(RecognitionEngine):
    """
    Continuous recognition from the default microphone.

    - Smoothed RMS voice activity detection over 100ms blocks
    - Rolling pre-buffer so the first syllable isn't cut off
    - Each finished phrase is transcribed on a worker thread
    """

    def __init__(self,
                 loop: asyncio.AbstractEventLoop = None,
                 device_index: int = None,
                 sample_rate: int = 16000,
                 threshold: float = 0.015,
                 pre_buffer_seconds: float = 0.8,
                 silence_duration: float = 1.2,
                 smoothing_window: int = 5,
                 language: str = "en-US"):
        """
        Args:
            loop: Event loop callbacks are delivered on (the running loop by default)
            device_index: Which microphone to use (None = default)
            sample_rate: Audio sample rate in Hz
            threshold: Smoothed RMS above which a block counts as speech
            pre_buffer_seconds: Audio kept from before speech was detected
            silence_duration: Silence that ends a phrase
            smoothing_window: Number of blocks averaged for VAD
            language: Recognition language
        """
        super().__init__()
        self.loop = loop
        self.device_index = device_index
        self.sample_rate = sample_rate
        self.threshold = threshold
        self.silence_duration = silence_duration
        self.language = language

        self._block_size = int(sample_rate * 0.1)  # 100ms blocks
        self._pre_buffer = deque(maxlen=max(1, int(pre_buffer_seconds * 10)))
        self._rms_history = deque(maxlen=smoothing_window)
        self._silence_limit = max(1, int(silence_duration * 10))

        self._stream = None
        self._phrase: List[np.ndarray] = []
        self._in_phrase = False
        self._silent_blocks = 0

        self._phrases: "queue.Queue[Optional[np.ndarray]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._segments: ResultSegments = []
        self._recognizer = sr.Recognizer()

    # ========== THREAD HOPPING ==========

    def _emit(self, callback, *args):
        if self.loop is not None and self.loop.is_running():
            self.loop.call_soon_threadsafe(callback, *args)
        else:
            callback(*args)

    # ========== LIFECYCLE ==========

    def start(self):
        # PortAudio is only loaded once a microphone is actually opened
        import sounddevice as sd

        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        self._phrases = queue.Queue()
        self._segments = []
        self._phrase = []
        self._in_phrase = False
        self._silent_blocks = 0
        self._rms_history.clear()
        self._pre_buffer.clear()

        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype='float32',
                device=self.device_index,
                blocksize=self._block_size,
                callback=self._audio_callback,
            )
            self._stream.start()
        except PermissionError as e:
            print(f"⚠️  Microphone access refused: {e}")
            self._stream = None
            self.on_error("not-allowed")
            return
        except sd.PortAudioError as e:
            print(f"⚠️  Could not start microphone: {e}")
            self._stream = None
            self.on_error("audio-capture")
            return

        self._worker = threading.Thread(target=self._transcribe_worker, daemon=True)
        self._worker.start()
        print("👂 Listening...")
        self.on_start()

    def stop(self):
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        # Flush a phrase that was still being spoken
        if self._in_phrase and self._phrase:
            self._phrases.put(np.concatenate(self._phrase))
        self._phrase = []
        self._in_phrase = False
        self._phrases.put(None)
        print("👂 Stopped listening.")

    # ========== AUDIO THREAD ==========

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            print(f"⚠️  Audio status: {status}")
        chunk = indata[:, 0].copy()

        rms = float(np.sqrt(np.mean(chunk ** 2)))
        self._rms_history.append(rms)
        is_speech = float(np.mean(self._rms_history)) > self.threshold

        if not self._in_phrase:
            self._pre_buffer.append(chunk)
            if is_speech:
                self._in_phrase = True
                self._silent_blocks = 0
                self._phrase = list(self._pre_buffer)
                self._pre_buffer.clear()
            return

        self._phrase.append(chunk)
        if is_speech:
            self._silent_blocks = 0
            return
        self._silent_blocks += 1
        if self._silent_blocks >= self._silence_limit:
            self._phrases.put(np.concatenate(self._phrase))
            self._phrase = []
            self._in_phrase = False

    # ========== TRANSCRIPTION THREAD ==========

    def _transcribe_worker(self):
        while True:
            audio = self._phrases.get()
            if audio is None:
                break
            text = self._transcribe(audio)
            if text is None:
                return
            if text:
                # Segments are joined verbatim, so keep a separating space
                prefix = " " if self._segments else ""
                self._segments.append([prefix + text])
                self._emit(self.on_result, [list(s) for s in self._segments])
        self._emit(self.on_end)

    def _transcribe(self, audio: np.ndarray) -> Optional[str]:
        """
        Returns:
            The phrase text, "" when nothing intelligible was said, or None
            after reporting a fatal error
        """
        fd, path = tempfile.mkstemp(suffix='.wav')
        os.close(fd)
        try:
            wavfile.write(path, self.sample_rate, (audio * 32767).astype(np.int16))
            with sr.AudioFile(path) as source:
                recorded = self._recognizer.record(source)
            return self._recognizer.recognize_google(recorded, language=self.language)
        except sr.UnknownValueError:
            print("   (Speech not understood)")
            return ""
        except sr.RequestError as e:
            print(f"⚠️  Transcription error: {e}")
            self._emit(self.on_error, "network")
            return None
        finally:
            os.remove(path)
