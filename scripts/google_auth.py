#!/usr/bin/env python3
"""Authorise memoryline to read your Google Contacts.

Opens a browser for the OAuth consent screen, stores the token under
GOOGLE_TOKEN_DIR and then runs one contacts search to prove it works.
Without a token, contact handles are shown as raw phone numbers.

Usage:
    python scripts/google_auth.py
    python scripts/google_auth.py --account personal --force
"""

import argparse
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from google_auth_oauthlib.flow import InstalledAppFlow

from memoryline.config import settings
from memoryline.contacts.directory import GooglePeopleDirectory
from memoryline.integrations.google_auth import GoogleAuthManager


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Authorise Google Contacts lookups")
    parser.add_argument("--account", default=settings.google_account)
    parser.add_argument(
        "--credentials",
        type=Path,
        default=Path(settings.google_credentials_path),
        help="OAuth client secrets JSON downloaded from Google Cloud",
    )
    parser.add_argument("--force", action="store_true", help="Replace an existing token")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    token_path = GoogleAuthManager.token_path_for(args.account)

    if not args.credentials.exists():
        sys.exit(f"ERROR: no OAuth client secrets at {args.credentials}")
    if token_path.exists() and not args.force:
        sys.exit(f"{token_path} already exists; pass --force to replace it.")

    flow = InstalledAppFlow.from_client_secrets_file(
        str(args.credentials), scopes=GoogleAuthManager.SCOPES
    )
    creds = flow.run_local_server(port=0)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json(), encoding="utf-8")
    print(f"Saved contacts token for '{args.account}' to {token_path}")

    people = GoogleAuthManager.get(args.account).people()
    result = (
        people.people()
        .searchContacts(query="", readMask=GooglePeopleDirectory.READ_MASK)
        .execute()
    )
    print(f"Contacts search OK ({len(result.get('results', []))} results for warm-up query)")


if __name__ == "__main__":
    main()
