"""memoryline entry point: ingest and print the merged timeline."""

import argparse
import asyncio
import json
import logging

from memoryline.config import settings
from memoryline.demo import DemoDataLoader
from memoryline.ingestion.manager import IngestionManager
from memoryline.models import ConversationItem
from memoryline.summaries import summarize_contacts

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Merge iMessage history and Omi transcripts into one timeline."
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.imessage_message_limit,
        help="Maximum items to read from each source",
    )
    parser.add_argument("--demo", action="store_true", help="Print demo data instead")
    parser.add_argument("--json", action="store_true", help="Print the timeline as JSON")
    parser.add_argument(
        "--contacts", action="store_true", help="Print per-contact summaries instead"
    )
    return parser.parse_args(argv)


def _print_timeline(items: list[ConversationItem], as_json: bool) -> None:
    if as_json:
        print(json.dumps([i.model_dump(mode="json") for i in items], indent=2, sort_keys=True))
        return
    for item in items:
        stamp = item.timestamp.astimezone().strftime("%Y-%m-%d %H:%M")
        print(f"{stamp}  {item.speaker}: {item.text}")


def _print_contacts(items: list[ConversationItem]) -> None:
    for summary in summarize_contacts(items):
        stamp = summary.last_message.astimezone().strftime("%Y-%m-%d %H:%M")
        print(f"{summary.display_name} ({summary.message_count}) {stamp}  {summary.preview}")


async def run(limit: int, demo: bool = False) -> list[ConversationItem]:
    """Ingest from every source; fall back to demo data if nothing comes back."""
    if demo:
        return DemoDataLoader().load()

    manager = IngestionManager.from_settings()
    items = await manager.ingest(limit)
    report = manager.last_report
    for source, error in report.errors.items():
        logger.warning("%s: %s", source, error)

    if not items:
        logger.warning("No conversation history available, showing demo data")
        return DemoDataLoader().load()
    return items


def main(argv: list[str] | None = None) -> None:
    """Run one ingestion and print the result."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    args = _parse_args(argv)
    items = asyncio.run(run(args.limit, demo=args.demo))
    if args.contacts:
        _print_contacts(items)
    else:
        _print_timeline(items, args.json)


if __name__ == "__main__":
    main()
