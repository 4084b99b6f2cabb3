"""Tests for the pending/processed/failed batch files."""

import json

from pipeline.batch_files import BatchFiles
from pipeline.models import Classification, Confidence, Label

from fakes import LAPTOP


def _classification(code, label=Label.OVERPRICED):
    return Classification(
        code=code,
        label=label,
        confidence=Confidence.HIGH,
        items=(LAPTOP,),
        total_amount=500000,
        documents_considered=1,
        processed_at="2025-01-01T00:00:00",
    )


def test_add_pending_skips_known_codes(tmp_path):
    files = BatchFiles(str(tmp_path))
    files.add_processed_orders([_classification("100-1-SE25")])

    added = files.add_pending_codes(
        ["100-1-SE25", "100-2-SE25", "100-3-SE25", "100-2-SE25"],
        exclude=["100-3-SE25"],
    )

    assert added == 1
    assert files.load_pending()["codes"] == ["100-2-SE25"]
    assert json.loads((tmp_path / "pending.json").read_text())["totalPending"] == 1


def test_pending_batch_and_removal(tmp_path):
    files = BatchFiles(str(tmp_path))
    files.add_pending_codes(["100-1-SE25", "100-2-SE25", "100-3-SE25"])

    batch = files.get_pending_batch(2)
    files.remove_pending_codes(batch)

    assert batch == ["100-1-SE25", "100-2-SE25"]
    assert files.get_pending_batch(2) == ["100-3-SE25"]


def test_processed_order_is_replaced_on_reprocessing(tmp_path):
    files = BatchFiles(str(tmp_path))
    files.add_processed_orders([_classification("100-1-SE25")])

    files.add_processed_orders([_classification("100-1-SE25", Label.NORMAL)])

    orders = files.load_processed()["orders"]
    assert len(orders) == 1
    assert orders[0]["label"] == "normal"


def test_failed_codes_count_attempts(tmp_path):
    files = BatchFiles(str(tmp_path))

    for _ in range(3):
        files.add_failed_code("100-1-SE25", "Timeout")
    files.add_failed_code("100-2-SE25", "No purchase order found")

    failed = {f["code"]: f for f in files.load_failed()["codes"]}
    assert failed["100-1-SE25"]["attempts"] == 3
    assert files.get_retryable_failed(3) == ["100-2-SE25"]

    files.remove_failed_codes(["100-2-SE25"])
    assert files.get_retryable_failed(3) == []


def test_stats(tmp_path):
    files = BatchFiles(str(tmp_path))
    files.add_pending_codes(["100-1-SE25", "100-2-SE25"])
    files.add_processed_orders([_classification("100-3-SE25")])
    files.add_failed_code("100-4-SE25", "Timeout")

    stats = files.get_stats()

    assert stats["pending"] == 2
    assert stats["processed"] == 1
    assert stats["failed"] == 1
    assert stats["total"] == 4
    assert stats["completion"] == 25.0


def test_empty_directory_has_empty_stats(tmp_path):
    stats = BatchFiles(str(tmp_path / "new")).get_stats()

    assert stats["total"] == 0
    assert stats["completion"] == 0.0
