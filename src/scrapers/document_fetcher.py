"""Bounded retry loop around a document fetch collaborator."""

import time
from typing import Callable, Optional

from pipeline.models import FetchResult
from utils.file_storage import remove_code_directory

from scrapers.retry import exponential_backoff, random_sleep


class DocumentFetcher:
    """Fetch all documents for a code, retrying failed attempts with backoff.

    The collaborator is any object with ``fetch_documents(code)`` returning a
    list of local file paths (possibly empty) or raising on failure. A
    collaborator that returns a failed ``FetchResult`` is handled the same
    way as one that raises.
    """

    def __init__(
        self,
        collaborator,
        downloads_dir: Optional[str] = None,
        max_retries: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 30.0,
        jitter_min: float = 1.0,
        jitter_max: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            collaborator: Object implementing fetch_documents(code)
            downloads_dir: Where the collaborator saves files; cleared
                before each attempt and after a failed one
            max_retries: Total attempts per code
            base_delay: Backoff base (seconds)
            max_delay: Backoff cap (seconds)
            jitter_min: Minimum random delay before each attempt
            jitter_max: Maximum random delay before each attempt
            sleep: Sleep function (injectable for tests)
        """
        self.collaborator = collaborator
        self.downloads_dir = downloads_dir
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_min = jitter_min
        self.jitter_max = jitter_max
        self.sleep = sleep

    def fetch(self, code: str) -> FetchResult:
        """
        Fetch documents for one code.

        A success with zero documents is returned as is and never retried.
        After max_retries failed attempts the last error is returned as a
        failed FetchResult; nothing is raised.
        """
        last_error = 'Unknown error'

        for attempt in range(1, self.max_retries + 1):
            self._discard_partial(code)
            random_sleep(self.jitter_min, self.jitter_max, sleep=self.sleep)

            try:
                outcome = self.collaborator.fetch_documents(code)
            except Exception as e:
                last_error = str(e) or type(e).__name__
            else:
                if isinstance(outcome, FetchResult):
                    if outcome.success:
                        return FetchResult.ok(code, outcome.document_paths, attempts=attempt)
                    last_error = outcome.error or 'Unknown error'
                else:
                    return FetchResult.ok(code, list(outcome or []), attempts=attempt)

            self._discard_partial(code)

            if attempt < self.max_retries:
                delay = exponential_backoff(attempt, self.base_delay, self.max_delay)
                print(f"  ⚠ Attempt {attempt} failed for {code}, retrying in {delay:.1f}s: {last_error}")
                self.sleep(delay)

        return FetchResult.failed(
            code,
            f"Failed after {self.max_retries} attempts: {last_error}",
            attempts=self.max_retries,
        )

    def _discard_partial(self, code: str):
        if self.downloads_dir:
            remove_code_directory(self.downloads_dir, code)
