"""Classify an order by comparing the extractions of its documents."""

from datetime import datetime
from typing import Optional, Sequence

from pipeline.models import Classification, Confidence, ExtractionResult, Label


def compute_total(items) -> float:
    """Sum of quantity x unit price. Self-reported document totals are ignored."""
    return sum(item.subtotal for item in items)


def classify(
    code: str,
    results: Sequence[ExtractionResult],
    confidence_threshold: float = 0.7,
    processed_at: Optional[str] = None
) -> Classification:
    """
    Decide label and confidence for one order.

    - No successful extraction: INSUFFICIENT_DATA / LOW
    - All successful item lists equal, exactly one item: OVERPRICED / HIGH
    - All equal, several items: NORMAL / HIGH
    - Lists disagree: INSUFFICIENT_DATA, MEDIUM if the successful share
      reaches confidence_threshold, otherwise LOW

    The reported items are those of the first successful result.

    Args:
        code: Order code
        results: One ExtractionResult per document, in document order
        confidence_threshold: Successful share needed for MEDIUM
        processed_at: Timestamp to stamp (now if None)

    Returns:
        Classification
    """
    processed_at = processed_at or datetime.now().isoformat()
    successful = [r for r in results if r.success]

    if not successful:
        return Classification(
            code=code,
            label=Label.INSUFFICIENT_DATA,
            confidence=Confidence.LOW,
            items=(),
            total_amount=0,
            documents_considered=0,
            processed_at=processed_at,
        )

    reference = tuple(successful[0].items)
    all_equal = all(tuple(r.items) == reference for r in successful)

    if all_equal and len(reference) == 1:
        label, confidence = Label.OVERPRICED, Confidence.HIGH
    elif not all_equal:
        label = Label.INSUFFICIENT_DATA
        ratio = len(successful) / len(results)
        confidence = Confidence.MEDIUM if ratio >= confidence_threshold else Confidence.LOW
    else:
        label, confidence = Label.NORMAL, Confidence.HIGH

    return Classification(
        code=code,
        label=label,
        confidence=confidence,
        items=reference,
        total_amount=compute_total(reference),
        documents_considered=len(successful),
        processed_at=processed_at,
    )
