import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from companion_brain import ChatBackend
from companion_log import MessageIdGenerator
from companion_memory import CompanionMemory
from companion_store import InMemoryStore


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class FakeBackend(ChatBackend):
    """In-process ChatBackend that records what the coordinator asks of it."""

    def __init__(self, fragments=None, image=PNG_BYTES, open_error=None, stream_error=None,
                 image_error=None, speech=b"\x01\x00\x02\x00"):
        self.fragments = ["Hi", " there", "!"] if fragments is None else fragments
        self.image = image
        self.open_error = open_error
        self.stream_error = stream_error
        self.image_error = image_error
        self.speech = speech

        self.sessions = []
        self.sent = []
        self.image_prompts = []
        self.speech_requests = []
        # Snapshots taken while the stream is being consumed
        self.observed = []
        self.state = None

    def create_chat_session(self, system_instruction):
        session = {"instruction": system_instruction, "n": len(self.sessions)}
        self.sessions.append(session)
        return session

    async def stream_chat(self, session, message):
        self.sent.append((session, message))
        if self.open_error is not None:
            raise self.open_error
        return self._stream()

    async def _stream(self):
        for fragment in self.fragments:
            await asyncio.sleep(0)
            if self.state is not None:
                self.observed.append((self.state.pending_request, self.state.streaming_message_id))
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error

    async def generate_image(self, prompt):
        self.image_prompts.append(prompt)
        await asyncio.sleep(0)
        if self.image_error is not None:
            raise self.image_error
        return self.image

    async def synthesize_speech(self, text):
        self.speech_requests.append(text)
        return self.speech


class FakeVoice:
    """Stands in for CompanionVoice; remembers every utterance."""

    def __init__(self):
        self.spoken = []

    def speak_async(self, text, enabled=True):
        self.spoken.append((text, enabled))
        return None

    async def wait_until_done(self):
        return None

    def shutdown(self):
        pass


class FrozenClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def id_generator(clock):
    return MessageIdGenerator(clock=clock)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def memory(store, id_generator):
    return CompanionMemory(store, id_generator=id_generator)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def voice():
    return FakeVoice()
