#!/usr/bin/env python3
"""Fetch, extract and classify Mercado Público purchase orders.

Usage:
    # Process new codes (resume from the session checkpoint)
    python scripts/run_pipeline.py

    # Start a fresh session (the all-time registry is still honored)
    python scripts/run_pipeline.py --mode fresh

    # Retry codes that failed in this session
    python scripts/run_pipeline.py --mode retry

    # Process only the first 10 new codes
    python scripts/run_pipeline.py --mode sample --sample 10

    # Show what would be processed
    python scripts/run_pipeline.py --dry-run
"""

import sys
import argparse
import os
import signal

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pipeline.config import PipelineConfig, ConfigurationError
from pipeline.idempotency import resolve_work_set
from pipeline.models import RunMode
from pipeline.progress import load_checkpoint, load_registry
from pipeline.reporting import PipelineReporter
from pipeline.runner import create_runner
from utils.csv_source import load_codes


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Classify Mercado Público purchase orders',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--mode',
        choices=[m.value for m in RunMode],
        default=RunMode.INCREMENTAL.value,
        help='Run mode. Default: incremental'
    )

    parser.add_argument(
        '--sample',
        type=int,
        help='Number of codes for sample mode'
    )

    parser.add_argument(
        '--input',
        type=str,
        help='CSV file with order codes (default: data/purchases.csv)'
    )

    parser.add_argument(
        '--concurrency',
        type=int,
        help='Codes processed at once (default: 1)'
    )

    parser.add_argument(
        '--checkpoint-every',
        type=int,
        help='Flush progress every N codes (default: 10)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be processed without executing'
    )

    args = parser.parse_args(argv)

    if args.mode == RunMode.SAMPLE.value and (args.sample is None or args.sample < 1):
        parser.error('--mode sample requires --sample N (N >= 1)')

    return args


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    mode = RunMode(args.mode)

    print("="*70)
    print("MERCADO PÚBLICO ORDER PIPELINE")
    print("="*70)

    try:
        config = PipelineConfig.from_env({
            'input_csv': args.input,
            'concurrency': args.concurrency,
            'checkpoint_every': args.checkpoint_every,
        })
        all_codes = load_codes(config.input_csv, config.code_column)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    print(f"Mode: {mode.value}")
    print(f"Codes in input: {len(all_codes)}")
    print("="*70 + "\n")

    if args.dry_run:
        registry = load_registry(config.registry_path)
        checkpoint = load_checkpoint(config.checkpoint_path)
        if mode == RunMode.FRESH:
            checkpoint.clear_processed()
        work = resolve_work_set(
            all_codes, registry, checkpoint, mode,
            sample_size=args.sample, max_retries=config.max_retries
        )
        print(f"⚠ DRY RUN - would process {len(work)} codes")
        for code in work:
            print(f"  {code}")
        return

    reporter = PipelineReporter(config.logs_dir)

    try:
        runner = create_runner(config, fresh=(mode == RunMode.FRESH), reporter=reporter)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    # SIGTERM behaves like Ctrl+C: finish the current stage, then stop
    signal.signal(signal.SIGTERM, lambda signum, frame: runner.request_stop())

    work = resolve_work_set(
        all_codes, runner.registry, runner.checkpoint, mode,
        sample_size=args.sample, max_retries=config.max_retries
    )

    try:
        summary = runner.run(work, mode=mode, codes_in_input=len(all_codes))
    except Exception as e:
        print(f"\n❌ Pipeline failed: {e}")
        reporter.log_error(str(e))
        if runner.summary is not None:
            reporter.save_manifest(runner.summary, config.manifest_path)
        reporter.save_error_log()
        sys.exit(1)

    reporter.save_manifest(summary, config.manifest_path)
    report = reporter.generate_summary(summary)
    reporter.save_report(report)
    reporter.save_error_log()
    reporter.print_summary_table(report)

    if summary.interrupted:
        print("⚠ Pipeline interrupted by user")
        sys.exit(130)


if __name__ == '__main__':
    main()
