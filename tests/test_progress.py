"""Tests for the registry and session checkpoint stores."""

import json

from pipeline.progress import (
    AllTimeRegistry,
    SessionCheckpoint,
    load_checkpoint,
    load_registry,
    save_checkpoint,
    save_registry,
)


def test_mark_processed_twice_counts_once():
    checkpoint = SessionCheckpoint()

    assert checkpoint.mark_processed("100-1-SE25") is True
    assert checkpoint.mark_processed("100-1-SE25") is False

    assert checkpoint.total_processed == 1
    assert checkpoint.processed_codes == ["100-1-SE25"]


def test_mark_failed_accumulates_attempts():
    checkpoint = SessionCheckpoint()

    assert checkpoint.mark_failed("100-1-SE25", "Timeout") == 1
    assert checkpoint.mark_failed("100-1-SE25", "No purchase order found") == 2

    assert checkpoint.attempts("100-1-SE25") == 2
    assert checkpoint.failed_codes["100-1-SE25"]["error"] == "No purchase order found"
    assert checkpoint.total_failed == 1


def test_success_clears_failed_entry():
    checkpoint = SessionCheckpoint()
    checkpoint.mark_failed("100-1-SE25", "Timeout")

    checkpoint.mark_processed("100-1-SE25")

    assert not checkpoint.is_failed("100-1-SE25")
    assert checkpoint.is_processed("100-1-SE25")
    assert checkpoint.total_failed == 0


def test_retryable_codes_respects_budget():
    checkpoint = SessionCheckpoint(failed_codes={
        "100-1-SE25": {"error": "x", "attempts": 2},
        "100-2-SE25": {"error": "x", "attempts": 3},
    })

    assert checkpoint.retryable_codes(3) == ["100-1-SE25"]
    assert checkpoint.retryable_codes(4) == ["100-1-SE25", "100-2-SE25"]


def test_registry_add_is_idempotent_and_monotonic():
    registry = AllTimeRegistry(["100-1-SE25"])
    before = list(registry.codes)

    assert registry.add("100-2-SE25") is True
    assert registry.add("100-1-SE25") is False

    assert set(before) <= set(registry.codes)
    assert registry.total_count == 2
    assert "100-2-SE25" in registry


def test_registry_loaded_with_duplicates_is_deduplicated():
    registry = AllTimeRegistry.from_dict({"codes": ["100-1-SE25", "100-1-SE25"], "totalCount": 2})

    assert registry.codes == ["100-1-SE25"]
    assert registry.total_count == 1


def test_registry_persists(tmp_path):
    path = tmp_path / "scraped-codes.json"
    registry = AllTimeRegistry()
    registry.add("100-1-SE25")
    registry.add("100-2-SE25")

    save_registry(registry, path)
    data = json.loads(path.read_text(encoding="utf-8"))
    loaded = load_registry(path)

    assert data["codes"] == ["100-1-SE25", "100-2-SE25"]
    assert data["totalCount"] == 2
    assert "lastUpdated" in data
    assert loaded.codes == registry.codes
    assert "100-2-SE25" in loaded


def test_checkpoint_persists(tmp_path):
    path = tmp_path / "checkpoint.json"
    checkpoint = SessionCheckpoint()
    checkpoint.mark_processed("100-1-SE25")
    checkpoint.mark_failed("100-2-SE25", "Timeout")
    checkpoint.mark_failed("100-2-SE25", "Timeout")

    save_checkpoint(checkpoint, path)
    data = json.loads(path.read_text(encoding="utf-8"))
    loaded = load_checkpoint(path)

    assert data["processedCodes"] == ["100-1-SE25"]
    assert data["failedCodes"][0]["code"] == "100-2-SE25"
    assert data["failedCodes"][0]["attempts"] == 2
    assert data["totalProcessed"] == 1
    assert data["totalFailed"] == 1
    assert loaded.is_processed("100-1-SE25")
    assert loaded.attempts("100-2-SE25") == 2


def test_missing_files_give_empty_stores(tmp_path):
    assert load_registry(tmp_path / "missing.json").total_count == 0
    assert load_checkpoint(tmp_path / "missing.json").total_processed == 0


def test_corrupt_files_fall_back_to_empty(tmp_path, capsys):
    registry_path = tmp_path / "scraped-codes.json"
    checkpoint_path = tmp_path / "checkpoint.json"
    registry_path.write_text("{not json", encoding="utf-8")
    checkpoint_path.write_text("[1, 2, 3]", encoding="utf-8")

    registry = load_registry(registry_path)
    checkpoint = load_checkpoint(checkpoint_path)

    assert registry.total_count == 0
    assert checkpoint.total_processed == 0
    assert checkpoint.total_failed == 0
    assert "⚠" in capsys.readouterr().out


def test_save_leaves_no_temp_file(tmp_path):
    path = tmp_path / "nested" / "checkpoint.json"

    save_checkpoint(SessionCheckpoint(), path)

    assert path.exists()
    assert not (tmp_path / "nested" / "checkpoint.json.tmp").exists()


def test_clear_processed_keeps_failed_attempts():
    checkpoint = SessionCheckpoint()
    checkpoint.mark_processed("100-1-SE25")
    checkpoint.mark_failed("100-2-SE25", "Timeout", attempts=3)

    checkpoint.clear_processed()

    assert checkpoint.total_processed == 0
    assert not checkpoint.is_processed("100-1-SE25")
    assert checkpoint.attempts("100-2-SE25") == 3


def test_registry_with_string_codes_falls_back_to_empty(tmp_path, capsys):
    path = tmp_path / "scraped-codes.json"
    path.write_text(json.dumps({"codes": "100-1-SE25", "totalCount": 1}), encoding="utf-8")

    registry = load_registry(path)

    assert registry.total_count == 0
    assert "1" not in registry
    assert "⚠ Invalid registry structure" in capsys.readouterr().out


def test_checkpoint_with_string_processed_codes_falls_back_to_empty(tmp_path, capsys):
    path = tmp_path / "checkpoint.json"
    path.write_text(json.dumps({"processedCodes": "100-1-SE25", "failedCodes": []}), encoding="utf-8")

    checkpoint = load_checkpoint(path)

    assert checkpoint.total_processed == 0
    assert "⚠ Invalid checkpoint structure" in capsys.readouterr().out
