"""Command line interface for generating session instances."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from . import api, ics_builder, util
from .errors import SchedulingError
from .generator import InstanceGenerator

DAY_NAMES = {
    name: number
    for number, full in enumerate(
        ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
    )
    for name in (full, full[:3])
}


def parse_days(value: str) -> List[int]:
    """Parse ``1,3,5`` or ``mon,wed,fri`` into Sunday-based weekday numbers."""

    days: List[int] = []
    for part in value.split(","):
        part = part.strip().lower()
        if not part:
            continue
        if part in DAY_NAMES:
            days.append(DAY_NAMES[part])
            continue
        try:
            days.append(int(part))
        except ValueError:
            raise argparse.ArgumentTypeError(f"unknown day of week: {part!r}") from None
    return days


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate session instances from a schedule period"
    )
    parser.add_argument("--period", required=True, help="Schedule period id")
    parser.add_argument("--start", required=True, help="First day of the window")
    parser.add_argument("--end", required=True, help="Last day of the window")
    parser.add_argument(
        "--days",
        required=True,
        type=parse_days,
        help="Days of week, 0=Sunday, e.g. 1,3,5 or mon,wed,fri",
    )
    parser.add_argument("--start-time", required=True, help="HH:MM")
    parser.add_argument("--end-time", required=True, help="HH:MM")
    parser.add_argument("--tz", default=util.DEFAULT_TZ)
    parser.add_argument("--ics", action="store_true", help="Write an ICS calendar")
    parser.add_argument("--dump-json", action="store_true")
    parser.add_argument(
        "--offline", action="store_true", help="Use saved JSON fixtures"
    )
    parser.add_argument("--preview", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: List[str] | None = None) -> None:
    args = parse_args(argv)
    util.configure_logging(args.verbose)
    tz = util.parse_timezone(args.tz)

    client = api.APIClient(dump_json=args.dump_json, offline=args.offline)
    store = api.APIStore(client)
    generator = InstanceGenerator(store)
    try:
        instances = generator.generate(
            args.period,
            args.start,
            args.end,
            args.days,
            args.start_time,
            args.end_time,
        )
    except SchedulingError as exc:
        logging.error("Generation failed: %s", exc)
        raise SystemExit(1)

    if args.ics:
        period = store.find_period(args.period)
        ics, _ = ics_builder.build_ics(instances, tz=tz, calendar_name=period.name)
        out_dir = Path("out/ics")
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / ics_builder.output_filename(period)
        path.write_text(ics, encoding="utf-8")
        logging.info("Wrote %s", path)

    if args.preview:
        now = datetime.now(timezone.utc)
        upcoming = [i for i in instances if not i.is_past(now, tz)]
        for inst in upcoming[:10]:
            start = inst.starts_at(tz)
            print(f"{start:%a %Y-%m-%d %H:%M} - {inst.end_time} {inst.name}")


if __name__ == "__main__":  # pragma: no cover
    main()
