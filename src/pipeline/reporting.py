"""Reporting and logging for pipeline runs."""

import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from utils.file_storage import write_json_file

from .models import RunSummary


class PipelineReporter:
    """Handles logging, the run manifest and the summary report."""

    def __init__(self, logs_dir: str = 'logs'):
        """Initialize reporter."""
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        self.start_time = datetime.now()
        self.logs = []
        self.errors = []
        self._lock = threading.Lock()

    def log(self, message: str):
        """Log a message."""
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        log_entry = f"[{timestamp}] {message}"
        with self._lock:
            self.logs.append(log_entry)
        print(log_entry)

    def log_warning(self, message: str):
        """Log a warning."""
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        log_entry = f"[{timestamp}] WARNING: {message}"
        with self._lock:
            self.logs.append(log_entry)
        print(f"⚠ {log_entry}")

    def log_error(self, error: str):
        """Log an error."""
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        error_entry = f"[{timestamp}] ERROR: {error}"
        with self._lock:
            self.errors.append(error_entry)
            self.logs.append(error_entry)
        print(f"❌ {error_entry}")

    def log_progress(self, current: int, total: int, succeeded: int, failed: int):
        percentage = (current / total * 100) if total else 100.0
        self.log(f"Progress: {current}/{total} ({percentage:.1f}%) | ✓ {succeeded} | ✗ {failed}")

    def build_manifest(self, summary: RunSummary) -> List[Dict]:
        return [outcome.to_manifest_entry() for outcome in summary.outcomes]

    def save_manifest(self, summary: RunSummary, manifest_path: str) -> Path:
        """
        Save the per-code manifest of this run.

        Args:
            summary: RunSummary from the runner
            manifest_path: Destination file
        """
        path = write_json_file(manifest_path, {
            'generatedAt': datetime.now().isoformat(),
            'mode': summary.mode.value,
            'orders': self.build_manifest(summary),
        })
        self.log(f"Manifest saved to: {path}")
        return path

    def generate_summary(self, summary: RunSummary) -> Dict:
        """
        Generate summary report from a run.

        Args:
            summary: RunSummary from the runner

        Returns:
            Summary dict
        """
        elapsed_time = (datetime.now() - self.start_time).total_seconds()

        return {
            'start_time': self.start_time.isoformat(),
            'end_time': datetime.now().isoformat(),
            'elapsed_seconds': elapsed_time,
            'mode': summary.mode.value,
            'interrupted': summary.interrupted,
            'totals': {
                'codes_in_input': summary.codes_in_input,
                'registry_total': summary.registry_total,
                'resolved': summary.resolved,
                'completed': len(summary.completed),
                'failed': len(summary.failed),
                'skipped': summary.skipped,
            },
            'labels': summary.label_counts(),
            'failures': [
                {'code': o.code, 'error': o.error, 'attempts': o.attempts}
                for o in summary.failed
            ],
            'errors': len(self.errors),
        }

    def save_report(self, report: Dict):
        """
        Save summary report to JSON file.

        Args:
            report: Summary dict from generate_summary
        """
        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S')
        report_file = self.logs_dir / f'pipeline_report_{timestamp}.json'
        write_json_file(report_file, report)
        self.log(f"Report saved to: {report_file}")

    def save_error_log(self):
        """Save error log to file."""
        if not self.errors:
            return

        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S')
        error_file = self.logs_dir / f'pipeline_errors_{timestamp}.log'

        with open(error_file, 'w', encoding='utf-8') as f:
            f.write('\n'.join(self.errors))

        self.log(f"Error log saved to: {error_file}")

    def print_summary_table(self, report: Dict):
        """Print a formatted summary table."""
        print("\n" + "="*70)
        print("PIPELINE SUMMARY")
        print("="*70)

        print(f"\nMode: {report['mode']}" + (" (interrupted)" if report['interrupted'] else ""))
        print(f"Elapsed Time: {report['elapsed_seconds']:.1f} seconds ({report['elapsed_seconds']/60:.1f} minutes)")

        totals = report['totals']
        print("\nTotals:")
        print(f"  Codes in input: {totals['codes_in_input']}")
        print(f"  Codes in registry (all-time): {totals['registry_total']}")
        print(f"  Resolved this run: {totals['resolved']}")
        print(f"  Completed: {totals['completed']}")
        print(f"  Failed: {totals['failed']}")
        print(f"  Not started: {totals['skipped']}")

        print("\nLabels:")
        for label, count in report['labels'].items():
            print(f"  {label}: {count}")

        if report['failures']:
            print("\nFailed codes:")
            for failure in report['failures']:
                print(f"  - {failure['code']}: {failure['error']} ({failure['attempts']} attempts)")

        if report['errors'] > 0:
            print(f"\n⚠ Errors: {report['errors']} (check error log)")

        print("="*70 + "\n")
