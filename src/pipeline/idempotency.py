"""Idempotency checks: decide which codes still need work this run."""

from typing import List, Optional, Sequence

from utils.csv_source import is_valid_code

from .models import RunMode
from .progress import AllTimeRegistry, SessionCheckpoint


def filter_new_codes(all_codes: Sequence[str], registry: AllTimeRegistry) -> List[str]:
    """
    Filter codes to only include ones never completed in any run.

    Args:
        all_codes: Codes from the input, in input order
        registry: All-time registry

    Returns:
        Codes not in the registry, in input order
    """
    return [code for code in all_codes if code not in registry]


def filter_unattempted_codes(codes: Sequence[str], checkpoint: SessionCheckpoint) -> List[str]:
    """Drop codes this session already completed or recorded as failed."""
    return [
        code for code in codes
        if not checkpoint.is_processed(code) and not checkpoint.is_failed(code)
    ]


def get_retryable_codes(
    registry: AllTimeRegistry,
    checkpoint: SessionCheckpoint,
    max_retries: int = 3
) -> List[str]:
    """Failed codes still under the retry budget and not completed since."""
    return [
        code for code in checkpoint.retryable_codes(max_retries)
        if code not in registry and is_valid_code(code)
    ]


def resolve_work_set(
    all_codes: Sequence[str],
    registry: AllTimeRegistry,
    checkpoint: SessionCheckpoint,
    mode: RunMode = RunMode.INCREMENTAL,
    sample_size: Optional[int] = None,
    max_retries: int = 3
) -> List[str]:
    """
    Compute the codes to process this run, in scheduling order.

    - INCREMENTAL: codes not in the registry and not yet attempted this session
    - FRESH: codes not in the registry (session checkpoint ignored)
    - RETRY: failed codes with attempts < max_retries
    - SAMPLE: INCREMENTAL truncated to the first sample_size codes

    Invalid or duplicate codes in all_codes are dropped. The result keeps
    the relative order of all_codes (failed-map order for RETRY) and never
    depends on registry order, so repeated calls with the same inputs
    return the same list.

    Args:
        all_codes: Every candidate code, in input order
        registry: All-time registry (never bypassed)
        checkpoint: Session checkpoint
        mode: Run mode
        sample_size: Number of codes for SAMPLE mode
        max_retries: Retry budget for RETRY mode

    Returns:
        List of codes to process
    """
    mode = RunMode(mode)

    if mode == RunMode.RETRY:
        return get_retryable_codes(registry, checkpoint, max_retries)

    seen = set()
    candidates = []
    for code in all_codes:
        if is_valid_code(code) and code not in seen:
            seen.add(code)
            candidates.append(code)

    new_codes = filter_new_codes(candidates, registry)

    if mode == RunMode.FRESH:
        return new_codes

    pending = filter_unattempted_codes(new_codes, checkpoint)

    if mode == RunMode.SAMPLE:
        if sample_size is None or sample_size < 0:
            raise ValueError(f"SAMPLE mode needs a non-negative sample size, got {sample_size}")
        return pending[:sample_size]

    return pending
