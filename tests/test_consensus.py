"""Tests for the consensus classifier."""

from pipeline.models import Confidence, ExtractionResult, FailureKind, Label, LineItem

from classifiers.consensus import classify, compute_total

from fakes import LAPTOP, MOUSE, illegible, ok


def _disagreeing(successful, total):
    results = [ok(f"doc{i}.pdf", LineItem("Item", 1, 1000 + i)) for i in range(successful)]
    results += [illegible(f"bad{i}.pdf") for i in range(total - successful)]
    return results


def test_single_item_agreement_is_overpriced():
    results = [ok(f"doc{i}.pdf", LAPTOP) for i in range(3)]

    classification = classify("3506-434-SE25", results)

    assert classification.label == Label.OVERPRICED
    assert classification.confidence == Confidence.HIGH
    assert classification.total_amount == 500000
    assert classification.documents_considered == 3


def test_multi_item_agreement_is_normal():
    results = [ok(f"doc{i}.pdf", LAPTOP, MOUSE) for i in range(3)]

    classification = classify("3506-434-SE25", results)

    assert classification.label == Label.NORMAL
    assert classification.confidence == Confidence.HIGH
    assert classification.items == (LAPTOP, MOUSE)


def test_disagreement_with_high_success_ratio_is_medium():
    classification = classify("3506-434-SE25", _disagreeing(8, 10))

    assert classification.label == Label.INSUFFICIENT_DATA
    assert classification.confidence == Confidence.MEDIUM
    assert classification.documents_considered == 8


def test_disagreement_with_low_success_ratio_is_low():
    classification = classify("3506-434-SE25", _disagreeing(5, 10))

    assert classification.label == Label.INSUFFICIENT_DATA
    assert classification.confidence == Confidence.LOW


def test_no_successful_results():
    results = [
        illegible("a.pdf"),
        ExtractionResult.failed("b.pdf", FailureKind.MALFORMED, "No JSON found"),
    ]

    classification = classify("3506-434-SE25", results)

    assert classification.label == Label.INSUFFICIENT_DATA
    assert classification.confidence == Confidence.LOW
    assert classification.items == ()
    assert classification.total_amount == 0
    assert classification.documents_considered == 0


def test_empty_input_is_insufficient():
    classification = classify("3506-434-SE25", [])

    assert classification.label == Label.INSUFFICIENT_DATA
    assert classification.documents_considered == 0


def test_illegible_documents_do_not_break_agreement():
    results = [ok("a.pdf", LAPTOP), illegible("b.pdf"), ok("c.pdf", LAPTOP)]

    classification = classify("3506-434-SE25", results)

    assert classification.label == Label.OVERPRICED
    assert classification.documents_considered == 2


def test_item_order_matters_for_agreement():
    results = [ok("a.pdf", LAPTOP, MOUSE), ok("b.pdf", MOUSE, LAPTOP)]

    classification = classify("3506-434-SE25", results)

    assert classification.label == Label.INSUFFICIENT_DATA
    assert classification.confidence == Confidence.MEDIUM


def test_items_come_from_first_successful_result():
    results = [illegible("a.pdf"), ok("b.pdf", MOUSE), ok("c.pdf", LAPTOP)]

    classification = classify("3506-434-SE25", results)

    assert classification.items == (MOUSE,)
    assert classification.total_amount == 30000


def test_total_ignores_reported_total():
    results = [ExtractionResult.ok("a.pdf", [LAPTOP, MOUSE], total_amount=1)]

    classification = classify("3506-434-SE25", results)

    assert classification.total_amount == compute_total([LAPTOP, MOUSE]) == 530000


def test_threshold_is_configurable():
    results = _disagreeing(5, 10)

    classification = classify("3506-434-SE25", results, confidence_threshold=0.5)

    assert classification.confidence == Confidence.MEDIUM


def test_classification_is_deterministic():
    results = _disagreeing(8, 10)

    first = classify("3506-434-SE25", results, processed_at="2025-01-01T00:00:00")
    second = classify("3506-434-SE25", results, processed_at="2025-01-01T00:00:00")

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_agreeing_empty_item_lists_are_normal():
    results = [ok("a.pdf"), ok("b.pdf")]

    classification = classify("3506-434-SE25", results)

    assert classification.label == Label.NORMAL
    assert classification.confidence == Confidence.HIGH
    assert classification.total_amount == 0
