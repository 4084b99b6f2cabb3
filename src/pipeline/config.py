"""Load and validate pipeline configuration from the environment."""

import os
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(ValueError):
    """Fatal setup problem detected before any work starts."""


class PipelineConfig:
    """Configuration for a pipeline run."""

    def __init__(
        self,
        input_csv: str = 'data/purchases.csv',
        code_column: str = 'chilecompra_code',
        registry_path: str = 'data/scraped-codes.json',
        checkpoint_path: str = 'data/checkpoint.json',
        results_dir: str = 'data/results',
        downloads_dir: str = 'downloads',
        manifest_path: str = 'data/download-manifest.json',
        batch_dir: str = 'data',
        logs_dir: str = 'logs',
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        retry_max_delay: float = 30.0,
        jitter_min: float = 1.0,
        jitter_max: float = 3.0,
        page_timeout: float = 60.0,
        requests_per_minute: int = 15,
        checkpoint_every: int = 10,
        concurrency: int = 1,
        confidence_threshold: float = 0.7,
        batch_size: int = 50,
        gemini_model: str = 'gemini-2.5-flash',
        api_key: Optional[str] = None,
    ):
        """
        Initialize pipeline configuration.

        Args:
            input_csv: CSV file with one identifier column
            code_column: Header name of the identifier column
            registry_path: All-time registry of completed codes
            checkpoint_path: Session checkpoint file
            results_dir: Directory for one classification JSON per code
            downloads_dir: Directory where fetched documents land
            manifest_path: Final run manifest
            batch_dir: Directory holding pending/processed/failed batch files
            logs_dir: Directory for run reports and error logs
            max_retries: Fetch attempts per code, and retry budget per code
            retry_base_delay: Base delay (seconds) for exponential backoff
            retry_max_delay: Cap (seconds) for exponential backoff
            jitter_min: Minimum random delay between network calls
            jitter_max: Maximum random delay between network calls
            page_timeout: HTTP timeout for each request (seconds)
            requests_per_minute: Inference service quota
            checkpoint_every: Flush stores after this many completions
            concurrency: Maximum codes in flight at once
            confidence_threshold: Successful-document ratio for MEDIUM confidence
            batch_size: Codes per scheduled batch run
            gemini_model: Gemini model name
            api_key: Gemini API key
        """
        self.input_csv = input_csv
        self.code_column = code_column
        self.registry_path = registry_path
        self.checkpoint_path = checkpoint_path
        self.results_dir = results_dir
        self.downloads_dir = downloads_dir
        self.manifest_path = manifest_path
        self.batch_dir = batch_dir
        self.logs_dir = logs_dir
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.jitter_min = jitter_min
        self.jitter_max = jitter_max
        self.page_timeout = page_timeout
        self.requests_per_minute = requests_per_minute
        self.checkpoint_every = checkpoint_every
        self.concurrency = concurrency
        self.confidence_threshold = confidence_threshold
        self.batch_size = batch_size
        self.gemini_model = gemini_model
        self.api_key = api_key

        self.validate()

    @property
    def min_request_interval(self) -> float:
        """Seconds between consecutive inference calls."""
        return 60.0 / self.requests_per_minute

    def validate(self):
        """Raise ConfigurationError for values the pipeline cannot run with."""
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.checkpoint_every < 1:
            raise ConfigurationError(f"checkpoint_every must be >= 1, got {self.checkpoint_every}")
        if self.requests_per_minute <= 0:
            raise ConfigurationError(
                f"requests_per_minute must be positive, got {self.requests_per_minute}"
            )
        if self.jitter_min < 0 or self.jitter_max < self.jitter_min:
            raise ConfigurationError(
                f"Invalid jitter bounds: min={self.jitter_min}, max={self.jitter_max}"
            )
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigurationError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )

    def require_api_key(self) -> str:
        """Return the API key or fail the run before any work starts."""
        if not self.api_key:
            raise ConfigurationError("Missing GOOGLE_API_KEY in environment")
        return self.api_key

    @classmethod
    def from_env(cls, overrides: Optional[Dict] = None) -> 'PipelineConfig':
        """
        Build configuration from environment variables.

        Args:
            overrides: Values that take precedence (e.g. from CLI flags).
                Keys with a None value are ignored.

        Returns:
            PipelineConfig instance
        """
        values = {
            'input_csv': os.getenv('INPUT_CSV', 'data/purchases.csv'),
            'code_column': os.getenv('CODE_COLUMN', 'chilecompra_code'),
            'registry_path': os.getenv('REGISTRY_PATH', 'data/scraped-codes.json'),
            'checkpoint_path': os.getenv('CHECKPOINT_PATH', 'data/checkpoint.json'),
            'results_dir': os.getenv('RESULTS_DIR', 'data/results'),
            'downloads_dir': os.getenv('DOWNLOADS_DIR', 'downloads'),
            'manifest_path': os.getenv('MANIFEST_PATH', 'data/download-manifest.json'),
            'batch_dir': os.getenv('BATCH_DIR', 'data'),
            'logs_dir': os.getenv('LOGS_DIR', 'logs'),
            'max_retries': _env_number('MAX_RETRIES', 3, int),
            'retry_base_delay': _env_number('RETRY_BASE_DELAY', 2.0, float),
            'retry_max_delay': _env_number('RETRY_MAX_DELAY', 30.0, float),
            'jitter_min': _env_number('JITTER_MIN', 1.0, float),
            'jitter_max': _env_number('JITTER_MAX', 3.0, float),
            'page_timeout': _env_number('PAGE_TIMEOUT', 60.0, float),
            'requests_per_minute': _env_number('REQUESTS_PER_MINUTE', 15, int),
            'checkpoint_every': _env_number('CHECKPOINT_EVERY', 10, int),
            'concurrency': _env_number('CONCURRENCY', 1, int),
            'confidence_threshold': _env_number('CONFIDENCE_THRESHOLD', 0.7, float),
            'batch_size': _env_number('BATCH_SIZE', 50, int),
            'gemini_model': os.getenv('GEMINI_MODEL', 'gemini-2.5-flash'),
            'api_key': os.getenv('GOOGLE_API_KEY') or os.getenv('GOOGLE_AI_API_KEY'),
        }

        if overrides:
            values.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**values)


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be a number, got '{raw}'")
