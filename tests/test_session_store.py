"""Tests for session persistence."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from pymakasero.errors import PersistenceError, SessionDecodeError, SessionNotFoundError
from pymakasero.session.codec import decode_part, decode_session, encode_session
from pymakasero.session.models import Content, FunctionCall, FunctionResponse, Session, Text


def _session_with_all_parts() -> Session:
    return Session(
        id="abc",
        history=[
            Content(role="user", parts=[Text("hi")]),
            Content(
                role="model",
                parts=[Text("let me check"), FunctionCall(name="git_status", args={"path_to_status": "."})],
            ),
            Content(
                role="user",
                parts=[FunctionResponse(name="git_status", response={"is_error": False, "output": " M a.py\n"})],
            ),
        ],
    )


def test_save_then_load_preserves_history(store):
    """Every part variant survives a save/load in order."""
    session = _session_with_all_parts()
    store.save(session)

    loaded = store.load("abc")

    assert loaded.id == "abc"
    assert loaded.history == session.history
    assert isinstance(loaded.history[1].parts[1], FunctionCall)
    assert loaded.history[1].parts[1].args == {"path_to_status": "."}
    assert loaded.created_at == session.created_at


def test_file_layout(store):
    """Sessions are pretty-printed JSON named after their id, parts tagged by type."""
    store.save(Session(id="abc", history=[Content(role="user", parts=[Text("hi")])]))

    path = store.directory / "abc.json"
    raw = path.read_text(encoding="utf-8")
    doc = json.loads(raw)

    assert "\n  " in raw
    assert doc["id"] == "abc"
    assert doc["history"] == [{"role": "user", "parts": [{"type": "text", "content": "hi"}]}]
    assert list(store.directory.glob(".*")) == []


def test_save_creates_directory(tmp_path):
    from pymakasero.session.store import SessionStore

    store = SessionStore(directory=tmp_path / "a" / "b")
    store.save(Session(id="x"))
    assert store.exists("x")


def test_load_missing_session(store):
    """An absent id is a not-found error, not a decode error."""
    with pytest.raises(SessionNotFoundError):
        store.load("nope")
    assert not store.exists("nope")


def test_load_invalid_json(store):
    store.directory.mkdir(parents=True)
    (store.directory / "bad.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(SessionDecodeError):
        store.load("bad")


def test_load_rejects_mismatched_id(store):
    """A file whose id disagrees with its name is rejected."""
    store.save(Session(id="one"))
    (store.directory / "one.json").rename(store.directory / "two.json")
    with pytest.raises(SessionDecodeError):
        store.load("two")


def test_list_skips_undecodable_files(store):
    """A corrupt file does not hide the valid sessions next to it."""
    store.save(Session(id="20240101000000_a"))
    store.save(Session(id="20240102000000_b"))
    (store.directory / "20240101120000_broken.json").write_text("[]", encoding="utf-8")
    (store.directory / "notes.txt").write_text("ignored", encoding="utf-8")

    sessions = store.list()

    assert [s.id for s in sessions] == ["20240101000000_a", "20240102000000_b"]


def test_list_without_directory(store):
    assert store.list() == []


@pytest.mark.parametrize("bad_id", ["", "../escape", "a/b", ".hidden"])
def test_invalid_session_ids(store, bad_id):
    with pytest.raises(PersistenceError):
        store.path_for(bad_id)


def test_null_function_response_decodes_to_empty_object():
    part = decode_part({"type": "function_response", "content": {"name": "complete", "response": None}})
    assert part == FunctionResponse(name="complete", response={})


def test_unknown_part_type_is_a_decode_error():
    with pytest.raises(SessionDecodeError):
        decode_part({"type": "image", "content": "..."})


def test_invalid_role_is_a_decode_error():
    doc = encode_session(Session(id="s"))
    doc["history"] = [{"role": "system", "parts": []}]
    with pytest.raises(SessionDecodeError):
        decode_session(doc)


def test_zulu_timestamps_and_updated_not_before_created():
    doc = {
        "id": "s",
        "created_at": "2024-05-01T10:00:00Z",
        "updated_at": "2024-05-01T09:00:00Z",
        "history": [],
    }
    s = decode_session(doc)
    assert s.created_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert s.updated_at == s.created_at


def test_session_id_is_immutable():
    s = Session(id="fixed")
    with pytest.raises(AttributeError):
        s.id = "other"


def test_touch_never_moves_backwards():
    s = Session(id="s")
    before = s.updated_at
    s.touch(before - timedelta(hours=1))
    assert s.updated_at == before
    s.touch(before + timedelta(seconds=1))
    assert s.updated_at == before + timedelta(seconds=1)


def test_first_user_prompt():
    s = _session_with_all_parts()
    assert s.first_user_prompt() == "hi"
    assert Session(id="empty").first_user_prompt() is None


def test_load_minimal_document(store):
    """A stored session with only an id and history loads as-is."""
    store.directory.mkdir(parents=True)
    doc = {"id": "abc", "history": [{"role": "user", "parts": [{"type": "text", "content": "hello"}]}]}
    (store.directory / "abc.json").write_text(json.dumps(doc), encoding="utf-8")

    s = store.load("abc")

    assert len(s.history) == 1
    assert s.history[0].role == "user"
    assert s.history[0].parts == [Text("hello")]
    assert s.updated_at >= s.created_at


def test_list_skips_file_that_is_not_utf8(store):
    """Undecodable bytes make that one file a decode error, not a listing failure."""
    store.save(Session(id="good"))
    (store.directory / "bad.json").write_bytes(b'{"id": "bad", "history": "\xff\xfe"}')

    assert [s.id for s in store.list()] == ["good"]
    with pytest.raises(SessionDecodeError):
        store.load("bad")


def test_load_document_with_capitalised_part_keys(store):
    """Files from the Go tool use Name/Args/Response inside function parts."""
    store.directory.mkdir(parents=True)
    doc = {
        "id": "legacy",
        "created_at": "2025-03-01T09:15:42.123456789+09:00",
        "updated_at": "2025-03-01T09:16:00.5+09:00",
        "history": [
            {"role": "user", "parts": [{"type": "text", "content": "finish up"}]},
            {
                "role": "model",
                "parts": [{"type": "function_call", "content": {"Name": "complete", "Args": {"message": "ok"}}}],
            },
            {
                "role": "user",
                "parts": [{"type": "function_response", "content": {"Name": "complete", "Response": None}}],
            },
        ],
    }
    (store.directory / "legacy.json").write_text(json.dumps(doc), encoding="utf-8")

    s = store.load("legacy")

    assert s.history[1].parts == [FunctionCall(name="complete", args={"message": "ok"})]
    assert s.history[2].parts == [FunctionResponse(name="complete", response={})]
    assert s.created_at.microsecond == 123456
    assert s.updated_at > s.created_at

    store.save(s)
    saved = json.loads((store.directory / "legacy.json").read_text(encoding="utf-8"))
    assert saved["history"][1]["parts"][0]["content"] == {"name": "complete", "args": {"message": "ok"}}
