import asyncio
import json
import os
from pathlib import Path

from quill.agent_models import AgentAction, AgentDocumentUpdate, MessageRole
from quill.models import TextRange
from quill.store import DocumentStore
from quill.watcher import AgentResponseWatcher


def response(annotation_id: str, action: str = "resolve", message: str = "Done", **extra) -> dict:
    payload = {
        "annotationId": annotation_id,
        "action": action,
        "message": message,
        "timestamp": "2026-03-01T10:00:00Z",
    }
    payload.update(extra)
    return payload


def write_responses(path: Path, responses=(), updates=(), threads=None, mtime_ns: int | None = None) -> None:
    payload = {
        "version": 1,
        "annotationResponses": list(responses),
        "documentUpdates": list(updates),
        "threads": threads,
        "lastUpdated": "2026-03-01T10:00:00Z",
    }
    path.write_text(json.dumps(payload), encoding="utf-8")
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))


def make_watcher(tmp_path: Path, **kwargs) -> AgentResponseWatcher:
    return AgentResponseWatcher(response_path=tmp_path / "agent-response.json", **kwargs)


def test_missing_file_yields_empty_view(tmp_path) -> None:
    watcher = make_watcher(tmp_path)
    watcher.load_responses()
    assert watcher.responses is None
    assert watcher.has_unread_responses is False
    assert watcher.last_error is None
    assert watcher.check_for_changes() is False


def test_load_parses_all_sections(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    write_responses(
        path,
        responses=[response("ABC", action="suggest", suggestedText="Better words")],
        updates=[{"content": "new", "summary": "s", "addressedAnnotationIds": ["ABC"], "timestamp": "t1"}],
        threads=[
            {
                "annotationId": "ABC",
                "messages": [{"id": "m1", "role": "agent", "message": "Why?", "timestamp": "t0"}],
            }
        ],
    )
    watcher = make_watcher(tmp_path)
    watcher.load_responses()

    found = watcher.response_for("abc")
    assert found is not None
    assert found.action is AgentAction.SUGGEST
    assert found.suggested_text == "Better words"
    assert watcher.response_for("other") is None
    assert watcher.document_updates[0].addressed_annotation_ids == ["ABC"]
    assert watcher.thread_for("ABC").messages[0].role is MessageRole.AGENT
    assert watcher.thread_for("other") is None


def test_reread_only_when_mtime_advances(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    base = 1_700_000_000_000_000_000
    write_responses(path, responses=[response("a1", message="first")], mtime_ns=base)
    watcher = make_watcher(tmp_path)
    assert watcher.check_for_changes() is True
    assert watcher.response_for("a1").message == "first"

    write_responses(path, responses=[response("a1", message="second")], mtime_ns=base)
    assert watcher.check_for_changes() is False
    assert watcher.response_for("a1").message == "first"

    os.utime(path, ns=(base + 1_000_000_000, base + 1_000_000_000))
    assert watcher.check_for_changes() is True
    assert watcher.response_for("a1").message == "second"


def test_parse_failure_keeps_last_good_view(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    base = 1_700_000_000_000_000_000
    write_responses(path, responses=[response("a1")], mtime_ns=base)
    watcher = make_watcher(tmp_path)
    watcher.load_responses()

    path.write_text("{ broken", encoding="utf-8")
    os.utime(path, ns=(base + 10, base + 10))
    assert watcher.check_for_changes() is True
    assert watcher.last_error and "agent-response.json" in watcher.last_error
    assert watcher.response_for("a1") is not None

    path.write_text(json.dumps({"version": 1, "annotationResponses": [{"annotationId": "x"}]}), encoding="utf-8")
    os.utime(path, ns=(base + 20, base + 20))
    watcher.check_for_changes()
    assert watcher.response_for("a1") is not None

    write_responses(path, responses=[response("a2")], mtime_ns=base + 30)
    watcher.check_for_changes()
    assert watcher.last_error is None
    assert watcher.response_for("a1") is None
    assert watcher.response_for("a2") is not None


def test_deleted_file_clears_view_on_next_check(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    write_responses(path, responses=[response("a1")])
    watcher = make_watcher(tmp_path)
    watcher.load_responses()
    path.unlink()
    watcher.check_for_changes()
    assert watcher.responses is None
    assert watcher.has_unread_responses is False


def test_unread_tracking(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    base = 1_700_000_000_000_000_000
    write_responses(path, responses=[response("a1"), response("a2")], mtime_ns=base)
    watcher = make_watcher(tmp_path)
    watcher.load_responses()
    assert watcher.has_unread_responses is True
    watcher.mark_read("a1")
    assert watcher.has_unread_responses is True
    watcher.mark_read("A2")
    assert watcher.has_unread_responses is False

    write_responses(path, responses=[response("a1"), response("a2"), response("a3")], mtime_ns=base + 5)
    watcher.check_for_changes()
    assert watcher.has_unread_responses is True
    watcher.mark_all_read()
    assert watcher.has_unread_responses is False


def test_human_replies_survive_reload(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    base = 1_700_000_000_000_000_000
    threads = [{"annotationId": "a1", "messages": [{"id": "m1", "role": "agent", "message": "Q", "timestamp": "t"}]}]
    write_responses(path, threads=threads, mtime_ns=base)
    watcher = make_watcher(tmp_path)
    watcher.load_responses()

    reply = watcher.add_human_reply("a1", "Here is more context")
    assert reply.role is MessageRole.HUMAN
    assert [msg.message for msg in watcher.thread_for("a1").messages] == ["Q", "Here is more context"]

    write_responses(path, threads=threads, mtime_ns=base + 5)
    watcher.check_for_changes()
    assert len(watcher.thread_for("a1").messages) == 2

    fresh = watcher.add_human_reply("b2", "New thread")
    assert watcher.thread_for("b2").messages == [fresh]


def test_accept_document_update_applies_content_and_resolves(tmp_path) -> None:
    store = DocumentStore(state_path=tmp_path / "state.json", export_path=tmp_path / "document.json")
    store.update_content("old text here")
    kept = store.add_annotation(TextRange(start_offset=0, end_offset=3), "old")
    addressed = store.add_annotation(TextRange(start_offset=4, end_offset=8), "text")
    update = AgentDocumentUpdate(
        content="entirely new text",
        summary="Rewrote it",
        addressed_annotation_ids=[str(addressed.id).upper(), "00000000-0000-0000-0000-000000000000", "junk"],
        timestamp="t1",
    )

    make_watcher(tmp_path).accept_document_update(update, store)
    assert store.document.content == "entirely new text"
    assert addressed.is_resolved is True
    assert kept.is_resolved is False
    assert len(store.document.annotations) == 2


def test_clear_responses_resets_everything(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    write_responses(path, responses=[response("a1")])
    watcher = make_watcher(tmp_path)
    watcher.load_responses()
    watcher.add_human_reply("a1", "hello")

    watcher.clear_responses()
    assert not path.exists()
    assert watcher.responses is None
    assert watcher.thread_for("a1") is None
    assert watcher.has_unread_responses is False
    watcher.clear_responses()


def test_start_watching_loads_then_polls(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    base = 1_700_000_000_000_000_000
    write_responses(path, responses=[response("a1", message="first")], mtime_ns=base)
    changes: list[str] = []

    async def scenario() -> AgentResponseWatcher:
        watcher = make_watcher(tmp_path, interval_s=0.01)
        watcher.subscribe(changes.append)
        watcher.start_watching()
        assert watcher.response_for("a1").message == "first"
        assert watcher.is_watching

        write_responses(path, responses=[response("a1", message="second")], mtime_ns=base + 1_000)
        await asyncio.sleep(0.1)
        assert watcher.response_for("a1").message == "second"

        watcher.start_watching()
        assert watcher.is_watching
        watcher.stop_watching()
        assert not watcher.is_watching

        write_responses(path, responses=[response("a1", message="third")], mtime_ns=base + 2_000)
        await asyncio.sleep(0.05)
        return watcher

    watcher = asyncio.run(scenario())
    assert watcher.response_for("a1").message == "second"
    assert changes.count("responses") >= 2


def test_stat_failure_keeps_last_good_view(tmp_path) -> None:
    write_responses(tmp_path / "agent-response.json", responses=[response("a1", message="kept")])
    watcher = make_watcher(tmp_path)
    watcher.load_responses()
    changes: list[str] = []
    watcher.subscribe(changes.append)

    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    watcher.response_path = blocker / "agent-response.json"

    assert watcher.check_for_changes() is False
    assert "Cannot access" in watcher.last_error
    assert changes == ["error"]
    assert watcher.response_for("a1").message == "kept"

    watcher.load_responses()
    assert watcher.response_for("a1").message == "kept"
    assert changes == ["error", "error"]


def test_poll_loop_survives_stat_failure(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    changes: list[str] = []

    async def scenario() -> bool:
        watcher = AgentResponseWatcher(response_path=blocker / "agent-response.json", interval_s=0.01)
        watcher.subscribe(changes.append)
        watcher.start_watching()
        await asyncio.sleep(0.1)
        alive = watcher.is_watching
        watcher.stop_watching()
        return alive

    assert asyncio.run(scenario()) is True
    assert changes.count("error") >= 2


def test_clear_responses_tolerates_unlink_failure(tmp_path) -> None:
    path = tmp_path / "agent-response.json"
    write_responses(path, responses=[response("a1")])
    watcher = make_watcher(tmp_path)
    watcher.load_responses()
    watcher.mark_read("a1")
    watcher.add_human_reply("a1", "thanks")

    # A directory in place of the file makes unlink fail.
    path.unlink()
    path.mkdir()
    changes: list[str] = []
    watcher.subscribe(changes.append)
    watcher.clear_responses()

    assert path.is_dir()
    assert watcher.responses is None
    assert watcher.thread_for("a1") is None
    assert changes == ["responses"]
