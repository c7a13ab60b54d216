#!/usr/bin/env python3
"""Print the newest chat.db rows and how their bodies decode.

Handy when a macOS update changes the attributedBody format.

Usage:
    python scripts/inspect_chat_db.py
    python scripts/inspect_chat_db.py --limit 20 --db ~/Library/Messages/chat.db
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import aiosqlite

from memoryline.config import settings
from memoryline.messages.decoder import STREAM_MARKER, decode_body
from memoryline.messages.reader import MessageStoreReader

SAMPLE_SQL = """
SELECT message.text, message.attributedBody, handle.id
FROM message
LEFT JOIN handle ON message.handle_id = handle.ROWID
WHERE message.text IS NOT NULL OR message.attributedBody IS NOT NULL
ORDER BY message.date DESC
LIMIT ?
"""


async def inspect(db_path: Path, limit: int) -> None:
    uri = f"{db_path.resolve().as_uri()}?mode=ro"
    async with aiosqlite.connect(uri, uri=True) as db:
        async with db.execute(SAMPLE_SQL, (limit,)) as cursor:
            rows = await cursor.fetchall()

    for index, (text, blob, handle) in enumerate(rows, 1):
        print(f"Message {index} ({handle or 'me'}):")
        print(f"  Text field: {text!r}" if text is not None else "  Text field: NULL")
        if blob:
            fmt = "streamtyped" if STREAM_MARKER in blob[:20] else "unknown"
            print(f"  attributedBody: {len(blob)} bytes ({fmt})")
        else:
            print("  attributedBody: NULL")
        print(f"  Decoded: {decode_body(text, blob)!r}\n")


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect recent chat.db message bodies")
    parser.add_argument("--db", type=Path, default=settings.imessage_db_path)
    parser.add_argument("--limit", type=int, default=5)
    args = parser.parse_args()

    reader = MessageStoreReader(args.db)
    if not reader.is_readable():
        print(f"ERROR: cannot read {reader.db_path}. Grant Full Disk Access to your terminal.")
        sys.exit(1)
    asyncio.run(inspect(reader.db_path, args.limit))


if __name__ == "__main__":
    main()
