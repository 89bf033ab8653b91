#!/usr/bin/env python3
"""
Interpret pasted lab lines and print their risk assessment.

Usage:
    python scripts/interpret_labs.py labs.txt                 # One lab per line
    python scripts/interpret_labs.py labs.txt --sex female    # Sex-specific ranges
    cat labs.txt | python scripts/interpret_labs.py --json    # Full JSON output

Each line looks like "HGB 11.2 g/dL (12.0-15.5) L". Lines that cannot be
interpreted are reported as warnings and skipped.
"""
import argparse
import json
import logging
import sys

from labrisk.schemas.labs import SexAtBirth
from labrisk.services.lab_interpreter import interpret_lab_line
from labrisk.services.lab_risk_engine import summarize_panel_risk

logger = logging.getLogger("interpret_labs")

_LEVEL_MARKERS = {
    "green": "[ OK ]",
    "yellow": "[WARN]",
    "red": "[HIGH]",
    "unknown": "[ ?? ]",
}


def interpret_lines(lines: list[str], sex: SexAtBirth | None) -> tuple[list, int]:
    """Interpret each non-blank line. Returns (parsed values, rejected count)."""
    parsed_values = []
    rejected = 0
    for line_no, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        parsed = interpret_lab_line(line, sex)
        if parsed is None:
            logger.warning("Line %d not interpreted: %r", line_no, line.strip())
            rejected += 1
            continue
        parsed_values.append(parsed)
    return parsed_values, rejected


def main() -> int:
    parser = argparse.ArgumentParser(description="Interpret lab result lines")
    parser.add_argument(
        "file",
        nargs="?",
        type=argparse.FileType("r", encoding="utf-8"),
        default=sys.stdin,
        help="Text file with one lab result per line (default: stdin)",
    )
    parser.add_argument(
        "--sex",
        choices=[s.value for s in SexAtBirth],
        default=None,
        help="Sex at birth, used for sex-specific normal ranges",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print parsed values and panel summary as JSON",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    sex = SexAtBirth(args.sex) if args.sex else None
    parsed_values, rejected = interpret_lines(args.file.read().splitlines(), sex)
    summary = summarize_panel_risk(parsed_values)

    if args.json:
        payload = {
            "items": [p.model_dump(mode="json") for p in parsed_values],
            "risk": summary.model_dump(mode="json"),
            "rejected": rejected,
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        for item in summary.items:
            print(f"{_LEVEL_MARKERS[item.level.value]} {item.label:<16} {item.summary}")
        print()
        print(
            f"Panel: {summary.dominant_level.value} | "
            f"out of range: {summary.out_of_range_count} | "
            f"critical: {'yes' if summary.any_critical else 'no'} | "
            f"not interpreted: {rejected}"
        )

    if not parsed_values:
        logger.error("No lab lines could be interpreted")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
