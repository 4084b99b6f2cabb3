"""Main pipeline runner: fetch, extract and classify each order code."""

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional, Sequence

from tqdm import tqdm

from classifiers.consensus import classify
from classifiers.gemini_extractor import GeminiExtractor, RateLimiter
from scrapers.document_fetcher import DocumentFetcher
from scrapers.mercadopublico_scraper import MercadoPublicoScraper
from utils.file_storage import remove_code_directory, save_classification

from .config import PipelineConfig
from .models import CodeOutcome, RunMode, RunSummary
from .progress import (
    AllTimeRegistry,
    SessionCheckpoint,
    load_checkpoint,
    load_registry,
    save_checkpoint,
    save_registry,
)
from .reporting import PipelineReporter

INTERRUPTED = 'interrupted'


class _Interrupted(Exception):
    pass


class PipelineRunner:
    """Runs the fetch -> extract -> classify pipeline over a work set.

    The runner is the only writer of the registry and the checkpoint while
    a run is in progress. Every finished code goes through record_outcome,
    which updates both stores under one lock and flushes them to disk every
    ``config.checkpoint_every`` completions.
    """

    def __init__(
        self,
        config: PipelineConfig,
        fetcher: DocumentFetcher,
        extractor: GeminiExtractor,
        registry: AllTimeRegistry,
        checkpoint: SessionCheckpoint,
        reporter: Optional[PipelineReporter] = None,
    ):
        """
        Initialize pipeline runner.

        Args:
            config: Pipeline configuration
            fetcher: Fetches documents for a code (with retries)
            extractor: Extracts line items from documents
            registry: All-time registry of completed codes
            checkpoint: Session checkpoint
            reporter: PipelineReporter (creates new if None)
        """
        self.config = config
        self.fetcher = fetcher
        self.extractor = extractor
        self.registry = registry
        self.checkpoint = checkpoint
        self.reporter = reporter or PipelineReporter(config.logs_dir)

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._completions = 0
        self._summary: Optional[RunSummary] = None

    @property
    def summary(self) -> Optional[RunSummary]:
        """Summary of the current or last run."""
        return self._summary

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self):
        """Stop starting new codes; in-flight codes end as FAILED (interrupted)."""
        self._stop.set()

    def _check_interrupted(self):
        if self._stop.is_set():
            raise _Interrupted()

    def process_code(self, code: str) -> Optional[CodeOutcome]:
        """
        Run all stages for one code and return its terminal outcome.

        Every error is converted into a failed CodeOutcome. Returns None if
        a stop was requested before the code started (it stays pending).
        """
        if self._stop.is_set():
            return None

        try:
            return self._run_stages(code)
        except _Interrupted:
            return CodeOutcome(code=code, success=False, error=INTERRUPTED, attempts=1)
        except Exception as e:
            return CodeOutcome(code=code, success=False, error=f"Unexpected error: {e}", attempts=1)
        finally:
            remove_code_directory(self.config.downloads_dir, code)

    def _run_stages(self, code: str) -> CodeOutcome:
        fetch_result = self.fetcher.fetch(code)
        if not fetch_result.success:
            return CodeOutcome(
                code=code,
                success=False,
                error=fetch_result.error or 'Unknown error',
                attempts=fetch_result.attempts,
            )

        self._check_interrupted()

        paths = list(fetch_result.document_paths)
        missing = [p for p in paths if not os.path.isfile(p)]
        if missing:
            return CodeOutcome(
                code=code,
                success=False,
                error=f"Documents missing after fetch: {', '.join(os.path.basename(p) for p in missing)}",
                attempts=fetch_result.attempts,
            )

        results = self.extractor.process_many(paths) if paths else []

        self._check_interrupted()

        classification = classify(code, results, self.config.confidence_threshold)
        output_path = save_classification(classification, self.config.results_dir)

        return CodeOutcome(
            code=code,
            success=True,
            classification=classification,
            documents=len(paths),
            output_path=output_path,
            attempts=fetch_result.attempts,
        )

    def record_outcome(self, outcome: CodeOutcome):
        """Apply one finished code to both stores (single critical section)."""
        with self._lock:
            if outcome.success:
                self.checkpoint.mark_processed(outcome.code)
                self.registry.add(outcome.code)
            else:
                self.checkpoint.mark_failed(outcome.code, outcome.error or 'Unknown error')

            if self._summary is not None:
                self._summary.outcomes.append(outcome)

            self._completions += 1
            if self._completions % self.config.checkpoint_every == 0:
                self._flush_locked()
                if self._summary is not None:
                    self.reporter.log_progress(
                        len(self._summary.outcomes),
                        self._summary.resolved,
                        len(self._summary.completed),
                        len(self._summary.failed),
                    )

    def flush(self):
        """Write both stores to disk."""
        with self._lock:
            self._flush_locked()

    def _flush_locked(self):
        save_checkpoint(self.checkpoint, self.config.checkpoint_path)
        save_registry(self.registry, self.config.registry_path)

    def _process_and_record(self, code: str) -> Optional[CodeOutcome]:
        outcome = self.process_code(code)
        if outcome is None:
            return None

        self.record_outcome(outcome)

        if outcome.success:
            c = outcome.classification
            self.reporter.log(
                f"✓ {code}: {c.label.value} ({c.confidence.value}), "
                f"{outcome.documents} documents, {len(c.items)} items"
            )
        else:
            self.reporter.log_error(f"{code}: {outcome.error}")

        return outcome

    def run(
        self,
        codes: Sequence[str],
        mode: RunMode = RunMode.INCREMENTAL,
        codes_in_input: Optional[int] = None,
    ) -> RunSummary:
        """
        Process a resolved work set.

        Codes are started in the given order, at most config.concurrency at
        a time. KeyboardInterrupt stops new codes from starting and lets
        in-flight ones finish their current stage. Both stores are flushed
        at the end, also when an unexpected error propagates.

        Args:
            codes: Work set from resolve_work_set
            mode: Run mode (for reporting)
            codes_in_input: Number of codes in the input file

        Returns:
            RunSummary
        """
        summary = RunSummary(
            mode=RunMode(mode),
            codes_in_input=len(codes) if codes_in_input is None else codes_in_input,
            resolved=len(codes),
        )
        self._summary = summary

        if not codes:
            self.reporter.log("✓ No codes to process!")
            summary.registry_total = self.registry.total_count
            return summary

        self.reporter.log(
            f"Processing {len(codes)} codes ({summary.mode.value} mode, concurrency {self.config.concurrency})"
        )

        progress = tqdm(total=len(codes), desc="Processing orders", unit="order")
        executor = ThreadPoolExecutor(max_workers=self.config.concurrency)

        try:
            futures = [executor.submit(self._process_and_record, code) for code in codes]
            for future in as_completed(futures):
                future.result()
                progress.update(1)
        except KeyboardInterrupt:
            self.reporter.log_warning("Interrupted: letting in-flight codes finish their current stage")
            self.request_stop()
            summary.interrupted = True
        except Exception:
            self.request_stop()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            progress.close()
            self.flush()
            summary.registry_total = self.registry.total_count
            summary.interrupted = summary.interrupted or self.stop_requested

        return summary


def create_runner(
    config: PipelineConfig,
    fresh: bool = False,
    reporter: Optional[PipelineReporter] = None,
) -> PipelineRunner:
    """
    Build a runner with the Mercado Público scraper and the Gemini extractor.

    Args:
        config: Pipeline configuration
        fresh: Clear the checkpoint's completed codes (failed codes are kept)
        reporter: PipelineReporter (creates new if None)

    Raises:
        ConfigurationError: If the API key is missing
    """
    reporter = reporter or PipelineReporter(config.logs_dir)

    extractor = GeminiExtractor(
        api_key=config.require_api_key(),
        model_name=config.gemini_model,
        rate_limiter=RateLimiter(config.min_request_interval),
        max_retries=config.max_retries,
    )

    scraper = MercadoPublicoScraper(
        downloads_dir=config.downloads_dir,
        timeout=config.page_timeout,
        min_delay=config.jitter_min,
        max_delay=config.jitter_max,
    )
    fetcher = DocumentFetcher(
        scraper,
        downloads_dir=config.downloads_dir,
        max_retries=config.max_retries,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        jitter_min=config.jitter_min,
        jitter_max=config.jitter_max,
    )

    registry = load_registry(config.registry_path)
    reporter.log(f"Loaded registry: {registry.total_count} codes already completed (all-time)")

    checkpoint = load_checkpoint(config.checkpoint_path)
    if fresh:
        checkpoint.clear_processed()
        reporter.log(
            f"Starting fresh session (keeping {checkpoint.total_failed} failed codes and their attempts)"
        )
    else:
        reporter.log(
            f"Loaded session checkpoint: {checkpoint.total_processed} processed, "
            f"{checkpoint.total_failed} failed"
        )

    return PipelineRunner(config, fetcher, extractor, registry, checkpoint, reporter=reporter)
