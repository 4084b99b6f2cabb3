#!/usr/bin/env python3
"""Process one batch of pending codes (for scheduled runs).

Flow:
1. Optionally add new codes from the CSV to data/pending.json
2. Take the first BATCH_SIZE pending codes
3. Fetch, extract and classify each code
4. Update processed.json / failed.json and remove handled codes from pending

Usage:
    python scripts/process_batch.py
    python scripts/process_batch.py --seed data/purchases.csv
    python scripts/process_batch.py --requeue-failed --batch-size 20
"""

import sys
import argparse
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pipeline.batch_files import BatchFiles
from pipeline.config import PipelineConfig, ConfigurationError
from pipeline.models import RunMode
from pipeline.reporting import PipelineReporter
from pipeline.runner import create_runner
from utils.csv_source import load_codes


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Process one batch of pending order codes',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--batch-size', type=int, help='Codes per batch (default: BATCH_SIZE or 50)')
    parser.add_argument('--seed', type=str, help='CSV file whose new codes are added to pending first')
    parser.add_argument(
        '--requeue-failed',
        action='store_true',
        help='Move failed codes under the retry limit back to pending'
    )
    args = parser.parse_args(argv)

    print("\n" + "="*70)
    print("BATCH PROCESSOR")
    print("="*70)

    try:
        config = PipelineConfig.from_env({'batch_size': args.batch_size})
        reporter = PipelineReporter(config.logs_dir)
        runner = create_runner(config, reporter=reporter)
        seed_codes = load_codes(args.seed, config.code_column) if args.seed else []
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    batch_files = BatchFiles(config.batch_dir)

    if seed_codes:
        added = batch_files.add_pending_codes(seed_codes, exclude=runner.registry.codes)
        reporter.log(f"Added {added} new codes to pending")

    if args.requeue_failed:
        retryable = batch_files.get_retryable_failed(config.max_retries)
        batch_files.add_pending_codes(retryable, exclude=runner.registry.codes)
        reporter.log(f"Re-queued {len(retryable)} failed codes")

    codes = batch_files.get_pending_batch(config.batch_size)
    if not codes:
        reporter.log("✓ No pending codes to process!")
        return

    reporter.log(f"Found {len(codes)} codes to process")

    try:
        summary = runner.run(codes, mode=RunMode.INCREMENTAL)
    except Exception as e:
        print(f"\n❌ Batch failed: {e}")
        reporter.log_error(str(e))
        summary = runner.summary
        if summary is None:
            reporter.save_error_log()
            sys.exit(1)
        _update_batch_files(batch_files, summary)
        reporter.save_manifest(summary, config.manifest_path)
        reporter.save_error_log()
        sys.exit(1)

    _update_batch_files(batch_files, summary)
    reporter.save_manifest(summary, config.manifest_path)
    report = reporter.generate_summary(summary)
    reporter.save_report(report)
    reporter.save_error_log()
    reporter.print_summary_table(report)

    stats = batch_files.get_stats()
    print("OVERALL PROGRESS")
    print("="*70)
    print(f"Pending: {stats['pending']}")
    print(f"Processed: {stats['processed']}")
    print(f"Failed: {stats['failed']}")
    print(f"Completion: {stats['completion']:.2f}%")
    print("="*70)


def _update_batch_files(batch_files: BatchFiles, summary):
    """Move every finished code out of pending into processed or failed."""
    completed = summary.completed
    failed = summary.failed

    batch_files.add_processed_orders(o.classification for o in completed)
    batch_files.remove_failed_codes(o.code for o in completed)
    for outcome in failed:
        batch_files.add_failed_code(outcome.code, outcome.error or 'Unknown error')

    batch_files.remove_pending_codes([o.code for o in completed] + [o.code for o in failed])


if __name__ == '__main__':
    main()
