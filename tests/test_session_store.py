"""Tests for the session store and stats-cache loading."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from ccweb.config import Config
from ccweb.data.stats_cache import load_stats_cache, totals_from_stats
from ccweb.models.sessions import UsageDelta
from ccweb.services.session_store import SessionStore, generate_title

STATS = {
    "version": 1,
    "lastComputedDate": "2026-01-15",
    "dailyActivity": [
        {"date": "2026-01-15", "messageCount": 12, "sessionCount": 2, "toolCallCount": 7}
    ],
    "modelUsage": {
        "claude-sonnet-4-5": {
            "inputTokens": 1000,
            "outputTokens": 400,
            "cacheReadInputTokens": 500,
            "cacheCreationInputTokens": 100,
            "costUSD": 1.25,
        },
        "claude-haiku-4-5": {"inputTokens": 10, "outputTokens": 5, "costUSD": 0.01},
    },
    "totalSessions": 3,
    "totalMessages": 40,
}


def _new_store(config: Config) -> SessionStore:
    return SessionStore(config.sessions_file, config.projects_dir, config.stats_cache_path)


def test_generate_title() -> None:
    assert generate_title("  fix   the\n bug ") == "fix the bug"
    assert generate_title("a" * 60) == "a" * 50 + "..."
    assert generate_title("b" * 50) == "b" * 50


def test_upsert_creates_then_counts_turns(store: SessionStore) -> None:
    created = store.upsert("s1", "Write a haiku", "/work")
    assert created.title == "Write a haiku"
    assert created.message_count == 1
    assert created.created_at == created.last_activity

    again = store.upsert("s1", "ignored for title", "/elsewhere")
    assert again.message_count == 2
    assert again.title == "Write a haiku"
    assert again.directory == "/work"


def test_update_usage_accumulates_and_ignores_unknown(store: SessionStore) -> None:
    store.upsert("s1", "task", "/work")
    store.update_usage("s1", UsageDelta(input=100, output=20, cost_usd=0.5))
    store.update_usage("s1", UsageDelta(input=1, output=2, cost_usd=0.25))
    store.update_usage("unknown", UsageDelta(input=999))

    session = store.get("s1")
    assert session is not None
    assert session.total_tokens.input == 101
    assert session.total_tokens.output == 22
    assert session.total_cost_usd == pytest.approx(0.75)
    assert store.get("unknown") is None


def test_records_persist_across_instances(test_config: Config) -> None:
    first = _new_store(test_config)
    first.upsert("s1", "persist me", "/work", UsageDelta(input=5, output=6, cost_usd=0.1))

    raw = json.loads(test_config.sessions_file.read_text())
    assert raw[0]["id"] == "s1"
    assert raw[0]["totalTokens"] == {"input": 5, "output": 6}
    assert raw[0]["totalCostUsd"] == pytest.approx(0.1)

    second = _new_store(test_config)
    restored = second.get("s1")
    assert restored is not None
    assert restored.title == "persist me"

    assert second.delete("s1") is True
    assert second.delete("s1") is False
    assert _new_store(test_config).get("s1") is None


def test_corrupt_sessions_file_starts_empty(test_config: Config) -> None:
    test_config.sessions_file.parent.mkdir(parents=True)
    test_config.sessions_file.write_text("{not json")
    store = _new_store(test_config)
    assert store.list_all() == []


def test_list_sessions_merges_external_and_local(store: SessionStore) -> None:
    store.upsert("test-session-001", "local title", "/work", UsageDelta(cost_usd=2.0))
    store.upsert("local-only", "only here", "/work")

    sessions = {s.id: s for s in store.list_sessions()}
    assert set(sessions) == {"test-session-001", "local-only"}

    external = sessions["test-session-001"]
    assert external.title == "Please read the config file and fix the bug"
    assert external.total_tokens.input == 370
    assert external.total_cost_usd == pytest.approx(2.0)


def test_external_lookups(store: SessionStore) -> None:
    session = store.get_external_session("test-session-001")
    assert session is not None
    assert session.directory == "/tmp/test-project"

    messages = store.get_session_messages("test-session-001")
    assert messages is not None
    assert len(messages) == 5
    assert store.get_session_messages("missing") is None

    info = store.get_resume_info("test-session-001")
    assert info is not None
    assert info.session_id == "internal-abc"
    assert store.get_resume_info("missing") is None


def test_total_usage_prefers_stats_cache(store: SessionStore, test_config: Config) -> None:
    store.upsert("s1", "task", "/work", UsageDelta(input=10, output=1, cost_usd=0.5))
    local = store.get_total_usage()
    assert (local.input, local.output) == (10, 1)
    assert local.cost_usd == pytest.approx(0.5)

    test_config.stats_cache_path.write_text(json.dumps(STATS))
    totals = store.get_total_usage()
    assert totals.input == 1610
    assert totals.output == 405
    assert totals.cost_usd == pytest.approx(1.26)


def test_load_stats_cache(tmp_path: Path) -> None:
    assert load_stats_cache(tmp_path / "missing.json") is None

    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2")
    assert load_stats_cache(bad) is None

    wrong_shape = tmp_path / "wrong.json"
    wrong_shape.write_text(json.dumps({"modelUsage": {"m": {"inputTokens": "lots"}}}))
    assert load_stats_cache(wrong_shape) is None

    good = tmp_path / "stats.json"
    good.write_text(json.dumps(STATS))
    stats = load_stats_cache(good)
    assert stats is not None
    assert stats.total_sessions == 3
    assert stats.daily_activity[0].tool_call_count == 7
    assert stats.model_usage["claude-sonnet-4-5"].cost_usd == pytest.approx(1.25)
    assert totals_from_stats(stats).input == 1610


def test_save_replaces_file_without_leftovers(store: SessionStore, test_config: Config) -> None:
    store.upsert("s1", "task", "/work")
    store.upsert("s2", "task", "/work")

    saved = json.loads(test_config.sessions_file.read_text())
    assert {s["id"] for s in saved} == {"s1", "s2"}
    leftovers = [p.name for p in test_config.sessions_file.parent.iterdir()]
    assert leftovers == [test_config.sessions_file.name]


def test_concurrent_writers_and_readers(store: SessionStore, test_config: Config) -> None:
    errors: list[Exception] = []

    def write(prefix: str) -> None:
        try:
            for i in range(40):
                store.upsert(f"{prefix}-{i}", "task", "/work", UsageDelta(input=1))
        except Exception as e:
            errors.append(e)

    def read() -> None:
        try:
            for _ in range(40):
                store.list_sessions()
                store.get_total_usage()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=write, args=(p,)) for p in ("a", "b")]
    threads.append(threading.Thread(target=read))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(store.list_all()) == 80
    assert len(json.loads(test_config.sessions_file.read_text())) == 80
    assert store.get_total_usage().input == 80


def test_total_usage_uses_stats_cache_without_model_buckets(
    store: SessionStore, test_config: Config
) -> None:
    store.upsert("s1", "task", "/work", UsageDelta(input=10, output=1, cost_usd=0.5))
    test_config.stats_cache_path.write_text(json.dumps({"totalSessions": 1, "modelUsage": {}}))

    totals = store.get_total_usage()
    assert (totals.input, totals.output, totals.cost_usd) == (0, 0, 0.0)
