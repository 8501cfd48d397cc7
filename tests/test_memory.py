"""
Tests for session restore, resets and the store mirror.
"""

import json

from companion_log import Message, Role
from companion_memory import AVATAR_KEY, HISTORY_KEY, PERSONALITY_KEY, TTS_KEY, CompanionMemory
from companion_personas import PERSONAS, Personality
from companion_store import InMemoryStore


def _history(store):
    return json.loads(store.get(HISTORY_KEY))


# === Restore ===


def test_empty_store_restores_default_greeting(memory, store):
    state = memory.restore()

    assert state.active_personality == Personality.CARING
    assert len(state.log) == 1
    greeting = state.log[0]
    assert greeting.role == Role.MODEL
    assert greeting.text == PERSONAS[Personality.CARING].greeting
    assert greeting.reactions == [] and not greeting.is_favorite
    assert state.voice_output_enabled is True
    assert state.user_avatar is None
    assert store.get(PERSONALITY_KEY) == "Caring"


def test_stored_entries_are_prefixed(memory, store):
    memory.restore()
    assert "luna-personality" in store.raw()


def test_restores_history_and_settings(id_generator):
    history = [
        {"id": 10, "role": "user", "text": "hi"},
        {"id": 11, "role": "model", "text": "hello", "reactions": ["❤️"], "isFavorite": True},
    ]
    store = InMemoryStore({
        PERSONALITY_KEY: "Playful",
        HISTORY_KEY: json.dumps(history),
        TTS_KEY: "false",
        AVATAR_KEY: "data:image/png;base64,AAAA",
    })
    state = CompanionMemory(store, id_generator=id_generator).restore()

    assert state.active_personality == Personality.PLAYFUL
    assert [m.text for m in state.log] == ["hi", "hello"]
    assert state.log[1].reactions == ["❤️"]
    assert state.log[1].is_favorite
    assert state.voice_output_enabled is False
    assert state.user_avatar == "data:image/png;base64,AAAA"


def test_unknown_personality_falls_back(id_generator):
    store = InMemoryStore({PERSONALITY_KEY: "Grumpy"})
    state = CompanionMemory(store, id_generator=id_generator).restore()
    assert state.active_personality == Personality.CARING
    assert store.get(PERSONALITY_KEY) == "Caring"


def test_configured_default_personality(id_generator):
    store = InMemoryStore()
    memory = CompanionMemory(store, default_personality=Personality.INTELLECTUAL, id_generator=id_generator)
    state = memory.restore()
    assert state.log[0].text == PERSONAS[Personality.INTELLECTUAL].greeting


def test_malformed_history_falls_back_to_greeting(id_generator):
    for raw in ["{not json", json.dumps({"id": 1}), json.dumps([{"id": 1, "role": "alien"}]), "[]"]:
        store = InMemoryStore({HISTORY_KEY: raw})
        state = CompanionMemory(store, id_generator=id_generator).restore()
        assert len(state.log) == 1
        assert state.log[0].text == PERSONAS[Personality.CARING].greeting


def test_messages_without_ids_are_backfilled(id_generator):
    history = [{"role": "user", "text": "a"}, {"role": "model", "text": "b"}, {"id": 0, "role": "user", "text": "c"}]
    store = InMemoryStore({HISTORY_KEY: json.dumps(history)})
    state = CompanionMemory(store, id_generator=id_generator).restore()

    ids = [m.id for m in state.log]
    assert len(set(ids)) == 3
    assert ids[1] == ids[0] + 1
    assert state.log.new_id() > max(ids)


def test_duplicate_restored_ids_are_renumbered(id_generator):
    history = [{"id": 7, "role": "user", "text": "a"}, {"id": 7, "role": "model", "text": "b"}]
    store = InMemoryStore({HISTORY_KEY: json.dumps(history)})
    state = CompanionMemory(store, id_generator=id_generator).restore()
    assert len({m.id for m in state.log}) == 2


# === Mirror ===


def test_every_mutation_is_mirrored(memory, store):
    state = memory.restore()
    message = Message(id=state.log.new_id(), role=Role.USER, text="hello")
    state.log.append(message)
    assert [m["text"] for m in _history(store)][-1] == "hello"

    state.log.toggle_reaction(message.id, "👍")
    assert _history(store)[-1]["reactions"] == ["👍"]


def test_empty_log_is_never_written(memory, store):
    state = memory.restore()
    saved = store.get(HISTORY_KEY)

    state.log.reset([], notify=True)

    assert store.get(HISTORY_KEY) == saved


def test_store_failures_do_not_break_the_session(memory, store, monkeypatch):
    state = memory.restore()

    def broken(key, value):
        raise OSError("disk full")

    monkeypatch.setattr(store, "set", broken)
    state.log.append(Message(id=state.log.new_id(), role=Role.USER, text="still here"))
    memory.set_voice_output(state, False)

    assert state.log[-1].text == "still here"
    assert state.voice_output_enabled is False


# === Resets ===


def test_switch_personality_resets_session(memory, store):
    state = memory.restore()
    state.log.append(Message(id=state.log.new_id(), role=Role.USER, text="hi"))
    state.backend_session = object()

    assert memory.switch_personality(state, Personality.PLAYFUL) is True

    assert state.active_personality == Personality.PLAYFUL
    assert state.backend_session is None
    assert len(state.log) == 1
    assert state.log[0].text == PERSONAS[Personality.PLAYFUL].greeting
    assert store.get(HISTORY_KEY) is None
    assert store.get(PERSONALITY_KEY) == "Playful"


def test_switch_to_same_personality_is_noop(memory):
    state = memory.restore()
    state.log.append(Message(id=state.log.new_id(), role=Role.USER, text="hi"))
    session = state.backend_session = object()

    assert memory.switch_personality(state, Personality.CARING) is False
    assert len(state.log) == 2
    assert state.backend_session is session


def test_clear_chat_keeps_personality(memory, store):
    state = memory.restore()
    memory.switch_personality(state, Personality.INTELLECTUAL)
    state.log.append(Message(id=state.log.new_id(), role=Role.USER, text="hi"))

    memory.clear_chat(state)

    assert state.active_personality == Personality.INTELLECTUAL
    assert [m.text for m in state.log] == [PERSONAS[Personality.INTELLECTUAL].greeting]
    assert store.get(HISTORY_KEY) is None


def test_history_is_written_again_after_reset(memory, store):
    state = memory.restore()
    memory.clear_chat(state)
    state.log.append(Message(id=state.log.new_id(), role=Role.USER, text="again"))
    assert [m["text"] for m in _history(store)][-1] == "again"


# === Settings ===


def test_voice_output_setting(memory, store):
    state = memory.restore()
    memory.set_voice_output(state, False)
    assert store.get(TTS_KEY) == "false"
    assert CompanionMemory(store).restore().voice_output_enabled is False


def test_avatar_setting(memory, store):
    state = memory.restore()
    memory.set_avatar(state, "data:image/png;base64,AAAA")
    assert store.get(AVATAR_KEY) == "data:image/png;base64,AAAA"
    memory.set_avatar(state, None)
    assert state.user_avatar is None
    assert store.get(AVATAR_KEY) is None
