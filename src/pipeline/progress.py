"""Progress stores: the all-time registry and the session checkpoint.

Both stores are plain in-memory objects. Mutation goes through their
``mark_*``/``add`` methods, which also keep a derived membership index in
sync. Persistence is always an explicit ``save_*`` call.
"""

from datetime import datetime
from typing import Dict, List, Optional

from utils.file_storage import read_json_file, write_json_file


def _now() -> str:
    return datetime.now().isoformat()


def _code_list(value, field_name: str) -> List[str]:
    """Validate a persisted list of codes; raises TypeError for anything else."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(code, str) for code in value):
        raise TypeError(f"'{field_name}' must be a list of codes")
    return value


class AllTimeRegistry:
    """Every code ever completed successfully. Never shrinks."""

    def __init__(self, codes: Optional[List[str]] = None, last_updated: Optional[str] = None):
        self.codes: List[str] = []
        self._index = set()
        self.last_updated = last_updated or _now()
        for code in codes or []:
            self.add(code)

    @property
    def total_count(self) -> int:
        return len(self.codes)

    def __contains__(self, code: str) -> bool:
        return code in self._index

    def __len__(self) -> int:
        return len(self.codes)

    def add(self, code: str) -> bool:
        """Add a code. Returns False if it was already registered."""
        if code in self._index:
            return False
        self.codes.append(code)
        self._index.add(code)
        self.last_updated = _now()
        return True

    def to_dict(self) -> Dict:
        return {
            'codes': list(self.codes),
            'lastUpdated': self.last_updated,
            'totalCount': self.total_count,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'AllTimeRegistry':
        codes = _code_list(data.get('codes'), 'codes')
        return cls(codes=codes, last_updated=data.get('lastUpdated'))


class SessionCheckpoint:
    """This run's processed codes and failed codes with attempt counts."""

    def __init__(
        self,
        processed_codes: Optional[List[str]] = None,
        failed_codes: Optional[Dict[str, Dict]] = None,
        last_processed_timestamp: Optional[str] = None,
    ):
        self.processed_codes: List[str] = []
        self._processed_index = set()
        self.failed_codes: Dict[str, Dict] = {}
        self.last_processed_timestamp = last_processed_timestamp or _now()

        for code in processed_codes or []:
            if code not in self._processed_index:
                self.processed_codes.append(code)
                self._processed_index.add(code)
        for code, entry in (failed_codes or {}).items():
            self.failed_codes[code] = {
                'error': entry.get('error', ''),
                'timestamp': entry.get('timestamp', self.last_processed_timestamp),
                'attempts': int(entry.get('attempts', 1)),
            }

    @property
    def total_processed(self) -> int:
        return len(self.processed_codes)

    @property
    def total_failed(self) -> int:
        return len(self.failed_codes)

    def is_processed(self, code: str) -> bool:
        return code in self._processed_index

    def is_failed(self, code: str) -> bool:
        return code in self.failed_codes

    def attempts(self, code: str) -> int:
        entry = self.failed_codes.get(code)
        return entry['attempts'] if entry else 0

    def mark_processed(self, code: str) -> bool:
        """
        Record a successful code.

        Clears any failed entry for the code. Returns False if the code was
        already marked processed (nothing is counted twice).
        """
        self.failed_codes.pop(code, None)
        if code in self._processed_index:
            return False
        self.processed_codes.append(code)
        self._processed_index.add(code)
        self.last_processed_timestamp = _now()
        return True

    def mark_failed(self, code: str, error: str, attempts: int = 1) -> int:
        """
        Record a failure, incrementing the attempts of an existing entry.

        Returns:
            Cumulative attempts for the code
        """
        entry = self.failed_codes.get(code)
        previous = entry['attempts'] if entry else 0
        self.failed_codes[code] = {
            'error': error,
            'timestamp': _now(),
            'attempts': previous + attempts,
        }
        return previous + attempts

    def clear_processed(self):
        """Forget this session's completed codes. Failed entries and their attempts are kept."""
        self.processed_codes = []
        self._processed_index = set()
        self.last_processed_timestamp = _now()

    def retryable_codes(self, max_retries: int = 3) -> List[str]:
        """Failed codes with fewer than max_retries recorded attempts."""
        return [
            code for code, entry in self.failed_codes.items()
            if entry['attempts'] < max_retries
        ]

    def to_dict(self) -> Dict:
        return {
            'processedCodes': list(self.processed_codes),
            'failedCodes': [
                {'code': code, **entry} for code, entry in self.failed_codes.items()
            ],
            'totalProcessed': self.total_processed,
            'totalFailed': self.total_failed,
            'lastProcessedTimestamp': self.last_processed_timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SessionCheckpoint':
        failed = {}
        failed_entries = data.get('failedCodes') or []
        if not isinstance(failed_entries, list):
            raise TypeError(f"'failedCodes' must be a list, got {type(failed_entries).__name__}")
        for entry in failed_entries:
            if isinstance(entry, dict) and entry.get('code'):
                failed[entry['code']] = entry
        return cls(
            processed_codes=_code_list(data.get('processedCodes'), 'processedCodes'),
            failed_codes=failed,
            last_processed_timestamp=data.get('lastProcessedTimestamp'),
        )


def load_registry(path) -> AllTimeRegistry:
    """Load the registry, or an empty one if the file is missing or corrupt."""
    data = read_json_file(path, lambda: AllTimeRegistry().to_dict())
    try:
        return AllTimeRegistry.from_dict(data)
    except (TypeError, AttributeError) as e:
        print(f"  ⚠ Invalid registry structure in {path}, starting empty: {e}")
        return AllTimeRegistry()


def save_registry(registry: AllTimeRegistry, path):
    return write_json_file(path, registry.to_dict())


def load_checkpoint(path) -> SessionCheckpoint:
    """Load the session checkpoint, or an empty one if missing or corrupt."""
    data = read_json_file(path, lambda: SessionCheckpoint().to_dict())
    try:
        return SessionCheckpoint.from_dict(data)
    except (TypeError, AttributeError, ValueError) as e:
        print(f"  ⚠ Invalid checkpoint structure in {path}, starting empty: {e}")
        return SessionCheckpoint()


def save_checkpoint(checkpoint: SessionCheckpoint, path):
    return write_json_file(path, checkpoint.to_dict())
