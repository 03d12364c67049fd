"""Tests for the per-session event journal."""
from __future__ import annotations

from pymakasero.events.store import EventStore


def test_append_and_read_back(tmp_path):
    events = EventStore.open("s1", directory=tmp_path)
    events.append("tool.call", {"tool": "git_status"})

    got = list(events.iter_events())

    assert [e.type for e in got] == ["tool.call"]
    assert got[0].data == {"tool": "git_status"}
    assert events.path == tmp_path / "s1.jsonl"


def test_foreign_lines_are_skipped(tmp_path):
    """Blank, non-JSON and non-object lines do not break reading."""
    events = EventStore.open("s1", directory=tmp_path)
    events.append("engine.completed", {})
    with events.path.open("a", encoding="utf-8") as f:
        f.write("\n3\nnot json\n[1, 2]\n")
    events.append("session.saved", {"history_len": 2})

    assert [e.type for e in events.iter_events()] == ["engine.completed", "session.saved"]


def test_missing_journal_reads_empty(tmp_path):
    assert list(EventStore.open("none", directory=tmp_path).iter_events()) == []
