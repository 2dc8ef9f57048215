#!/usr/bin/env python3
"""
Dump Report Analyzer - Main Entry Point

Generates an automatic analysis report of a dump file in JSON format.
"""

import os
import sys
import argparse
from pathlib import Path

from dotenv import load_dotenv

# Load .env before reading DUMP_REPORT_* settings
load_dotenv()

SUPPORTED_TARGETS = ("DumpFile", "DumpFileNoHeap")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Dump Report Analyzer - Structured diagnostic reports from process dumps',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate a report
  %(prog)s report crash.dmp -f crash-report.json

  # Skip the debugger-backed thread stacks
  %(prog)s report crash.dmp -f crash-report.json --no-debugger

Environment:
  DUMP_REPORT_CDB_PATH   Path to cdb.exe used for thread stacks
  DUMP_REPORT_VERBOSE    Set to 1 to print progress
        """
    )

    parser.add_argument(
        'command',
        choices=['report'],
        help='Command to execute'
    )

    parser.add_argument(
        'dump_file',
        help='Path to the dump file (.dmp)'
    )

    parser.add_argument(
        '--file',
        '-f',
        required=True,
        help='The name of the report file.'
    )

    parser.add_argument(
        '--no-debugger',
        action='store_true',
        help='Do not run CDB for thread stacks'
    )

    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        default=os.environ.get("DUMP_REPORT_VERBOSE", "") not in ("", "0"),
        help='Print progress for every report component'
    )

    args = parser.parse_args(argv)

    from dump_report import ReportOrchestrator, SnapshotError, write_report
    from dump_report.cdb_stack_walker import CdbStackWalker
    from dump_report.minidump_snapshot import open_minidump_snapshot

    if args.command == 'report':
        try:
            snapshot = open_minidump_snapshot(args.dump_file, use_debugger=not args.no_debugger)
        except SnapshotError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if snapshot.target_type.value not in SUPPORTED_TARGETS:
            print(f"Error: unsupported target type {snapshot.target_type.value}", file=sys.stderr)
            return 1

        CdbStackWalker.VERBOSE = args.verbose
        print(f"Analyzing: {args.dump_file}")
        document = ReportOrchestrator(verbose=args.verbose).run(snapshot)

        Path(args.file).parent.mkdir(parents=True, exist_ok=True)
        write_report(document, args.file)
        print(f"Report ({document.analysis_result.value}, "
              f"{len(document.components)} components) saved to: {args.file}")
        for failure in document.failures:
            print(f"  ! {failure.component_type}: {failure.error_type}: {failure.error_message}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
