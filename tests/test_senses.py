from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import speech_recognition as sr

from companion_errors import RecognitionDenied, RecognitionFailed
from companion_senses import MicrophoneRecognitionEngine, RecognitionEngine, SpeechCapture, best_transcript


class FakeEngine(RecognitionEngine):
    def __init__(self):
        super().__init__()
        self.started = 0
        self.stopped = 0

    def start(self):
        self.started += 1
        self.on_start()

    def stop(self):
        self.stopped += 1
        self.on_end()


def _capture(engine=None):
    engine = engine or FakeEngine()
    transcripts, errors, recording = [], [], []
    capture = SpeechCapture(engine, transcripts.append, errors.append, recording.append)
    return capture, engine, transcripts, errors, recording


def test_best_transcript_joins_top_alternatives():
    assert best_transcript([["hello", "yellow"], [" there"], []]) == "hello there"


def test_results_replace_the_transcript():
    capture, engine, transcripts, _, _ = _capture()
    capture.start()
    engine.on_result([["I love"]])
    engine.on_result([["I love"], [" you"]])
    assert transcripts == ["I love", "I love you"]


def test_start_stop_toggle():
    capture, engine, _, _, recording = _capture()

    capture.toggle()
    assert capture.is_recording
    capture.start()
    assert engine.started == 1

    capture.toggle()
    assert not capture.is_recording
    capture.stop()
    assert engine.stopped == 1
    assert recording == [True, False]


def test_permission_denied_maps_to_recognition_denied():
    capture, engine, _, errors, _ = _capture()
    capture.start()
    engine.on_error("not-allowed")

    assert isinstance(errors[0], RecognitionDenied)
    assert not capture.is_recording
    assert engine.stopped == 1


def test_other_errors_map_to_recognition_failed():
    capture, engine, _, errors, _ = _capture()
    capture.start()
    engine.on_error("network")

    assert isinstance(errors[0], RecognitionFailed)
    assert errors[0].reason == "network"
    assert "network" in errors[0].user_message


# === Microphone engine (no real audio device) ===


def _speech_block(engine, level):
    return np.full((engine._block_size, 1), level, dtype=np.float32)


def test_vad_cuts_a_phrase_after_silence():
    engine = MicrophoneRecognitionEngine(silence_duration=0.2, smoothing_window=1)
    for _ in range(3):
        engine._audio_callback(_speech_block(engine, 0.0), 0, None, None)
    for _ in range(4):
        engine._audio_callback(_speech_block(engine, 0.5), 0, None, None)
    for _ in range(2):
        engine._audio_callback(_speech_block(engine, 0.0), 0, None, None)

    phrase = engine._phrases.get_nowait()
    # pre-buffer (3 quiet + first loud) + 3 loud + 2 quiet blocks
    assert phrase.shape[0] == 9 * engine._block_size
    assert engine._phrases.empty()


def test_worker_reports_cumulative_results():
    engine = MicrophoneRecognitionEngine()
    results, ended = [], []
    engine.on_result = results.append
    engine.on_end = lambda: ended.append(True)

    with patch.object(engine, "_transcribe", side_effect=["hello", "", "there"]):
        for _ in range(3):
            engine._phrases.put(np.zeros(10, dtype=np.float32))
        engine._phrases.put(None)
        engine._transcribe_worker()

    assert results == [[["hello"]], [["hello"], [" there"]]]
    assert ended == [True]


def test_transcribe_network_error(tmp_path):
    engine = MicrophoneRecognitionEngine()
    errors = []
    engine.on_error = errors.append
    engine._recognizer = MagicMock()
    engine._recognizer.recognize_google.side_effect = sr.RequestError("offline")

    assert engine._transcribe(np.zeros(1600, dtype=np.float32)) is None
    assert errors == ["network"]


def test_transcribe_unintelligible_speech():
    engine = MicrophoneRecognitionEngine()
    engine._recognizer = MagicMock()
    engine._recognizer.recognize_google.side_effect = sr.UnknownValueError()

    assert engine._transcribe(np.zeros(1600, dtype=np.float32)) == ""


def test_recognition_engine_is_abstract():
    with pytest.raises(TypeError):
        RecognitionEngine()
