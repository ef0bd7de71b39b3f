"""
Export a security-event snapshot for offline analysis.

Usage:
    python -m scripts.export_events --days 7 --out security-events.json
    python -m scripts.export_events --severity critical --out critical.json

Writes the filtered events plus a summary (counts by type, severity and
source, and the covered time range) as one JSON document. Payloads were
sanitized on ingest; nothing here re-identifies a client.
"""

import argparse
import asyncio
import datetime
import json
import logging
from pathlib import Path

from secwatch.core.database import async_session_factory, engine
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.services.event_queries import MAX_EVENT_LIMIT, EventFilters, build_snapshot

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("export-events")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export security events to JSON.")
    parser.add_argument("--out", type=Path, default=Path("security-events.json"))
    parser.add_argument("--days", type=int, default=7, help="Look-back window in days.")
    parser.add_argument("--event-type", choices=[t.value for t in SecurityEventType])
    parser.add_argument("--severity", choices=[s.value for s in Severity])
    parser.add_argument("--source")
    parser.add_argument("--limit", type=int, default=MAX_EVENT_LIMIT)
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    filters = EventFilters(
        event_type=SecurityEventType(args.event_type) if args.event_type else None,
        severity=Severity(args.severity) if args.severity else None,
        source=args.source,
        since=datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=args.days),
    )

    async with async_session_factory() as session:
        snapshot = await build_snapshot(session, filters, args.limit)

    args.out.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
    logger.info(
        "Exported %d events (%d matching) to %s ✓",
        len(snapshot["events"]), snapshot["summary"]["total_events"], args.out,
    )

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
