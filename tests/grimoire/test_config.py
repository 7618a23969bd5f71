from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest

from grimoire import config
from grimoire.models import WorktreeState, WorktreeStateEntry


def test_write_json_uses_aliases_and_drops_unset(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "state.json"
    doc = WorktreeState(worktrees=[WorktreeStateEntry(name="a", merge_status="ready")])

    config.write_json(path, doc)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["worktrees"][0]["mergeStatus"] == "ready"
    assert "claimedBy" not in payload["worktrees"][0]
    assert [p.name for p in path.parent.iterdir()] == ["state.json"]


def test_load_json_rejects_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(json.JSONDecodeError):
        config.load_json(path)


def test_document_lock_is_reentrant_in_one_thread(tmp_path: Path) -> None:
    document = tmp_path / "state.json"
    with config.document_lock(document):
        with config.document_lock(document):
            config.write_json(document, {"ok": True})
    assert config.load_json(document) == {"ok": True}
    assert (tmp_path / "state.lock").exists()


def test_document_lock_blocks_other_threads(tmp_path: Path) -> None:
    document = tmp_path / "state.json"
    events: list[str] = []

    def other() -> None:
        with config.document_lock(document):
            events.append("other")

    with config.document_lock(document):
        thread = threading.Thread(target=other)
        thread.start()
        time.sleep(0.3)
        events.append("holder")
    thread.join(timeout=5)

    assert events == ["holder", "other"]


def test_parse_timestamp_round_trips_utc_now() -> None:
    stamp = config.utc_now()
    assert config.parse_timestamp(stamp).tzinfo is not None
