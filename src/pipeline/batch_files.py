"""Pending/processed/failed files for scheduled batch runs."""

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List

from utils.file_storage import read_json_file, write_json_file

from .models import Classification


def _now() -> str:
    return datetime.now().isoformat()


class BatchFiles:
    """Manages pending.json, processed.json and failed.json in one directory.

    Each method loads the file it needs, applies the change and saves it
    straight away, so every file stays independently readable.
    """

    def __init__(self, data_dir: str = 'data'):
        self.data_dir = Path(data_dir)
        self.pending_file = self.data_dir / 'pending.json'
        self.processed_file = self.data_dir / 'processed.json'
        self.failed_file = self.data_dir / 'failed.json'

    # ------------------------------------------------------------------
    # Pending codes
    # ------------------------------------------------------------------
    def load_pending(self) -> Dict:
        data = read_json_file(self.pending_file, lambda: {'codes': [], 'lastUpdated': _now(), 'totalPending': 0})
        data.setdefault('codes', [])
        return data

    def save_pending(self, data: Dict):
        data['lastUpdated'] = _now()
        data['totalPending'] = len(data['codes'])
        write_json_file(self.pending_file, data)

    def get_pending_batch(self, batch_size: int) -> List[str]:
        return self.load_pending()['codes'][:batch_size]

    def add_pending_codes(self, codes: Iterable[str], exclude: Iterable[str] = ()) -> int:
        """
        Append new codes to the pending list.

        Codes already pending, already processed, or in ``exclude`` (e.g. the
        all-time registry) are skipped.

        Returns:
            Number of codes added
        """
        pending = self.load_pending()
        known = set(pending['codes'])
        known.update(order['code'] for order in self.load_processed()['orders'])
        known.update(exclude)

        added = 0
        for code in codes:
            if code not in known:
                pending['codes'].append(code)
                known.add(code)
                added += 1

        self.save_pending(pending)
        return added

    def remove_pending_codes(self, codes: Iterable[str]):
        code_set = set(codes)
        pending = self.load_pending()
        pending['codes'] = [c for c in pending['codes'] if c not in code_set]
        self.save_pending(pending)

    # ------------------------------------------------------------------
    # Processed orders
    # ------------------------------------------------------------------
    def load_processed(self) -> Dict:
        data = read_json_file(self.processed_file, lambda: {'orders': [], 'totalProcessed': 0, 'lastUpdated': _now()})
        data.setdefault('orders', [])
        return data

    def save_processed(self, data: Dict):
        data['lastUpdated'] = _now()
        data['totalProcessed'] = len(data['orders'])
        write_json_file(self.processed_file, data)

    def add_processed_orders(self, classifications: Iterable[Classification]):
        """Add orders; a code processed again replaces its earlier order."""
        processed = self.load_processed()
        index = {order['code']: i for i, order in enumerate(processed['orders'])}

        for classification in classifications:
            order = classification.to_dict()
            if order['code'] in index:
                processed['orders'][index[order['code']]] = order
            else:
                index[order['code']] = len(processed['orders'])
                processed['orders'].append(order)

        self.save_processed(processed)

    # ------------------------------------------------------------------
    # Failed codes
    # ------------------------------------------------------------------
    def load_failed(self) -> Dict:
        data = read_json_file(self.failed_file, lambda: {'codes': [], 'totalFailed': 0, 'lastUpdated': _now()})
        data.setdefault('codes', [])
        return data

    def save_failed(self, data: Dict):
        data['lastUpdated'] = _now()
        data['totalFailed'] = len(data['codes'])
        write_json_file(self.failed_file, data)

    def add_failed_code(self, code: str, error: str):
        failed = self.load_failed()

        existing = next((f for f in failed['codes'] if f['code'] == code), None)
        if existing:
            existing['attempts'] = existing.get('attempts', 0) + 1
            existing['error'] = error
            existing['lastAttempt'] = _now()
        else:
            failed['codes'].append({
                'code': code,
                'error': error,
                'attempts': 1,
                'lastAttempt': _now(),
            })

        self.save_failed(failed)

    def remove_failed_codes(self, codes: Iterable[str]):
        code_set = set(codes)
        failed = self.load_failed()
        failed['codes'] = [f for f in failed['codes'] if f['code'] not in code_set]
        self.save_failed(failed)

    def get_retryable_failed(self, max_attempts: int = 3) -> List[str]:
        return [f['code'] for f in self.load_failed()['codes'] if f.get('attempts', 0) < max_attempts]

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def get_stats(self) -> Dict:
        pending = len(self.load_pending()['codes'])
        processed = len(self.load_processed()['orders'])
        failed = len(self.load_failed()['codes'])
        total = pending + processed + failed

        return {
            'pending': pending,
            'processed': processed,
            'failed': failed,
            'total': total,
            'completion': (processed / total * 100) if total else 0.0,
        }
