#!/usr/bin/env python3
"""
run_integrity_check.py - Performance Upload Integrity Runner

Runs the full integrity pipeline over one upload file:
1. Load the upload (JSON/TXT as raw text, CSV as pre-parsed records)
2. Parse, validate and aggregate
3. Recover under the requested policy
4. Store into an in-memory sink (dry run of the database write)
5. Print the report and optionally save report files

Exit codes:
    0  proceed / review_required
    1  manual_intervention (or storage failure)
    2  abort, or the upload could not be read as records

Usage:
    python run_integrity_check.py --input kinerja.json

    python run_integrity_check.py \\
        --input kinerja.csv \\
        --policy recovery_policy.json \\
        --merge average \\
        --report-dir reports/

Author: Kinerja Dashboard Project
Version: 1.0.0
"""

import argparse
import json
import sys
import logging
from pathlib import Path
from typing import Optional

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_MANUAL = 1
EXIT_ABORT = 2


def build_policy(args: argparse.Namespace):
    """Policy file (if any) with command-line overrides applied on top."""
    from kinerja_integrity import (
        CompetencyMergePolicy,
        IdentityResolution,
        RecoveryPolicy,
        load_policy,
    )

    policy = load_policy(args.policy) if args.policy else RecoveryPolicy()

    overrides = {}
    if args.no_auto_fix:
        overrides['auto_fix'] = False
    if args.no_defaults:
        overrides['use_default_values'] = False
    if args.skip_corrupted:
        overrides['skip_corrupted_records'] = True
    if args.merge:
        overrides['competency_merge'] = CompetencyMergePolicy(args.merge)
    if args.identity:
        overrides['identity_resolution'] = IdentityResolution(args.identity)

    if overrides:
        policy = RecoveryPolicy.model_validate({**policy.model_dump(), **overrides})
    return policy


def run_integrity_check(input_path: str, policy, report_dir: Optional[str] = None,
                        as_json: bool = False) -> int:
    """
    Run the pipeline over one file and print the outcome.

    Returns:
        Process exit code
    """
    from kinerja_integrity import (
        InMemoryStorageSink,
        RecommendedAction,
        load_payload_file,
        operation_report,
        process_employee_records,
        process_performance_data,
        report,
        to_audit_json,
    )
    from kinerja_integrity.reporting import save_reports

    # =========================================================================
    # STEP 1: Load upload
    # =========================================================================
    payload = load_payload_file(input_path)
    sink = InMemoryStorageSink()

    # =========================================================================
    # STEP 2: Validate, recover, store
    # =========================================================================
    if payload.is_pre_parsed:
        result = process_employee_records(payload.records, policy, sink=sink)
    else:
        result = process_performance_data(payload.raw, policy, sink=sink)

    # =========================================================================
    # STEP 3: Output
    # =========================================================================
    if as_json:
        print(to_audit_json(result, source_name=payload.source_name, input_hash=payload.input_hash))
    else:
        print("=" * 70)
        print("KINERJA DATA INTEGRITY CHECK")
        print("=" * 70)
        print(f"Input:   {payload.source_name} ({payload.size_bytes} bytes)")
        print(f"SHA-256: {payload.input_hash}")
        print(f"Stored:  {len(sink.employees)} employees")
        print()
        print(operation_report(result))
        if result.integrity_result is not None:
            print(report(result.integrity_result))

    if report_dir:
        paths = save_reports(result, report_dir, Path(payload.source_name).stem, payload.input_hash)
        for kind, path in paths.items():
            logger.info(f"Saved {kind}: {path}")

    # =========================================================================
    # STEP 4: Exit code from the recommended action
    # =========================================================================
    integrity = result.integrity_result
    if integrity is None or integrity.fatal:
        return EXIT_ABORT
    action = integrity.summary.recommended_action
    if action is RecommendedAction.ABORT:
        return EXIT_ABORT
    if action is RecommendedAction.MANUAL_INTERVENTION or result.storage_errors:
        return EXIT_MANUAL
    return EXIT_OK


def main():
    parser = argparse.ArgumentParser(
        description='Check and recover an employee performance upload',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default policy (auto-fix, default values, keep first duplicate competency)
  python run_integrity_check.py --input kinerja.json

  # Dry run: report what would be fixed without changing anything
  python run_integrity_check.py --input kinerja.json --no-auto-fix

  # Average duplicate competencies and keep the first duplicate employee
  python run_integrity_check.py \\
      --input kinerja.csv \\
      --merge average \\
      --identity first_write_wins \\
      --report-dir reports/
"""
    )

    parser.add_argument('--input', type=str, required=True,
                        help='Upload file (.json, .txt or .csv)')
    parser.add_argument('--policy', type=str, help='Recovery policy JSON file')
    parser.add_argument('--no-auto-fix', action='store_true',
                        help='Report fixes without applying them')
    parser.add_argument('--no-defaults', action='store_true',
                        help='Do not substitute default performance entries')
    parser.add_argument('--skip-corrupted', action='store_true',
                        help='Drop records with unrecoverable errors')
    parser.add_argument('--merge', choices=['keep_first', 'keep_last', 'average'],
                        help='Duplicate competency resolution')
    parser.add_argument('--identity', choices=['last_write_wins', 'first_write_wins'],
                        help='Duplicate employee resolution')
    parser.add_argument('--report-dir', type=str, help='Directory for report files')
    parser.add_argument('--json', action='store_true', help='Print the audit trail as JSON')

    args = parser.parse_args()

    if not Path(args.input).exists():
        print(f"ERROR: Input file not found: {args.input}")
        sys.exit(EXIT_ABORT)

    try:
        policy = build_policy(args)
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        print(f"ERROR: Invalid recovery policy: {exc}")
        sys.exit(EXIT_ABORT)

    try:
        exit_code = run_integrity_check(args.input, policy, args.report_dir, args.json)
    except ValueError as exc:
        print(f"ERROR: {exc}")
        sys.exit(EXIT_ABORT)
    sys.exit(exit_code)


if __name__ == '__main__':
    main()
