#!/usr/bin/env python3
"""
CLI script to preview how a bank statement CSV will be imported.

Nothing is written to the database.

Usage:
    python scripts/parse_statement_cli.py <filename> [--limit N]

Examples:
    python scripts/parse_statement_cli.py statements/january.csv
    python scripts/parse_statement_cli.py statements/january.csv --all
"""
import argparse
import sys
from pathlib import Path

from bookkeeper.config import settings
from bookkeeper.errors import ValidationError
from bookkeeper.services.import_service import parse


def main():
    parser = argparse.ArgumentParser(
        description="Parse a bank statement CSV and print the staged candidates."
    )
    parser.add_argument("filename", help="Path to the statement file to parse")
    parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help="Maximum number of candidates to display (default: 10)"
    )
    parser.add_argument(
        "--all", "-a",
        action="store_true",
        help="Show all candidates (ignore limit)"
    )

    args = parser.parse_args()

    filepath = Path(args.filename)
    if not filepath.exists():
        print(f"Error: File not found: {filepath}", file=sys.stderr)
        sys.exit(1)

    content = filepath.read_bytes()
    if len(content) > settings.MAX_IMPORT_BYTES:
        print(f"Error: File is larger than {settings.MAX_IMPORT_BYTES} bytes", file=sys.stderr)
        sys.exit(1)

    try:
        result = parse(content, max_rows=settings.MAX_IMPORT_ROWS)
    except ValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    candidates = result.candidates
    print(f"Candidates: {len(candidates)}")
    print(f"Rejected rows: {len(result.errors)}")
    print("-" * 80)

    display_count = len(candidates) if args.all else min(args.limit, len(candidates))

    for c in candidates[:display_count]:
        flag = "  [review]" if c.needs_review else ""
        print(f"\n[{c.index}] row {c.row} | {c.date.isoformat()} | {c.amount:>12}{flag}")
        print(f"    Description: {c.description[:60]}")
        if c.review_reason:
            print(f"    Review: {c.review_reason}")

    if not args.all and len(candidates) > args.limit:
        print(f"\n... and {len(candidates) - args.limit} more candidates (use --all to see all)")

    for error in result.errors:
        print(f"\nRow {error.row}: {error.message}", file=sys.stderr)
        print(f"    {','.join(error.data)}", file=sys.stderr)


if __name__ == "__main__":
    main()
