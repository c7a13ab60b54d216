"""Contact directory lookups against the Google People API, or a no-op stand-in."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from memoryline.integrations.google_auth import GoogleAuthManager

logger = logging.getLogger(__name__)

_NON_PHONE_RE = re.compile(r"[^0-9+]")
_SUFFIX_DIGITS = 10
_MIN_PHONE_DIGITS = 7


class DirectoryError(Exception):
    """The directory could not be queried (no access, transport failure)."""


@dataclass(frozen=True)
class ContactRecord:
    """The name fields the resolver cares about for one contact."""

    nickname: str = ""
    given_name: str = ""
    family_name: str = ""
    organization: str = ""

    @property
    def display_name(self) -> str:
        """Nickname, else "Given Family", else organization, else ``""``."""
        if self.nickname.strip():
            return self.nickname.strip()
        full = " ".join(p.strip() for p in (self.given_name, self.family_name) if p.strip())
        if full:
            return full
        return self.organization.strip()


class ContactDirectory(Protocol):
    async def lookup_phone(self, phone: str) -> ContactRecord | None: ...

    async def lookup_email(self, email: str) -> ContactRecord | None: ...


def normalize_phone(value: str) -> str:
    """Keep digits and a leading ``+``: ``"+1 (555) 123-4567"`` becomes ``"+15551234567"``."""
    stripped = _NON_PHONE_RE.sub("", value)
    digits = stripped.replace("+", "")
    return f"+{digits}" if stripped.startswith("+") else digits


def phones_match(a: str, b: str) -> bool:
    """Compare normalized numbers, tolerating a missing country code."""
    da, db = a.lstrip("+"), b.lstrip("+")
    if not da or not db:
        return False
    if da == db:
        return True
    return (
        len(da) >= _SUFFIX_DIGITS
        and len(db) >= _SUFFIX_DIGITS
        and da[-_SUFFIX_DIGITS:] == db[-_SUFFIX_DIGITS:]
    )


def _first(person: dict[str, Any], field: str) -> dict[str, Any]:
    values = person.get(field) or [{}]
    return values[0]


def record_from_person(person: dict[str, Any]) -> ContactRecord:
    """Flatten a People API person resource into a ``ContactRecord``."""
    name = _first(person, "names")
    return ContactRecord(
        nickname=_first(person, "nicknames").get("value", ""),
        given_name=name.get("givenName", ""),
        family_name=name.get("familyName", ""),
        organization=_first(person, "organizations").get("name", ""),
    )


class GooglePeopleDirectory:
    """Looks contacts up with ``people.searchContacts``.

    The People API wants one empty-query "warm-up" search before results
    become reliable, so the first lookup sends it.  Search is fuzzy, so every
    result is re-checked against the handle before it is accepted.
    """

    READ_MASK = "names,nicknames,organizations,phoneNumbers,emailAddresses"

    def __init__(self, auth: GoogleAuthManager | None = None) -> None:
        self._auth = auth
        self._service = None
        self._warmed_up = False

    def _people(self):  # noqa: ANN202
        if self._service is None:
            self._service = (self._auth or GoogleAuthManager.get()).people()
        return self._service

    async def _search(self, query: str) -> list[dict[str, Any]]:
        try:
            service = self._people()
            if not self._warmed_up:
                await asyncio.to_thread(
                    lambda: service.people()
                    .searchContacts(query="", readMask=self.READ_MASK)
                    .execute()
                )
                self._warmed_up = True
            result = await asyncio.to_thread(
                lambda: service.people()
                .searchContacts(query=query, readMask=self.READ_MASK, pageSize=10)
                .execute()
            )
        except (HttpError, GoogleAuthError, OSError, ValueError) as exc:
            raise DirectoryError(str(exc)) from exc
        return [r.get("person", {}) for r in result.get("results", [])]

    async def lookup_phone(self, phone: str) -> ContactRecord | None:
        target = normalize_phone(phone)
        if len(target.lstrip("+")) < _MIN_PHONE_DIGITS:
            # "Speaker 1" style labels are not phone numbers
            return None
        for person in await self._search(target):
            for entry in person.get("phoneNumbers", []):
                candidate = normalize_phone(entry.get("canonicalForm") or entry.get("value", ""))
                if phones_match(candidate, target):
                    return record_from_person(person)
        return None

    async def lookup_email(self, email: str) -> ContactRecord | None:
        target = email.strip().lower()
        for person in await self._search(target):
            for entry in person.get("emailAddresses", []):
                if entry.get("value", "").strip().lower() == target:
                    return record_from_person(person)
        return None


class NullDirectory:
    """Directory used when contact access is not configured."""

    async def lookup_phone(self, phone: str) -> ContactRecord | None:  # noqa: ARG002
        return None

    async def lookup_email(self, email: str) -> ContactRecord | None:  # noqa: ARG002
        return None


def create_directory(account: str | None = None) -> ContactDirectory:
    """Return a People API directory when a token exists, else ``NullDirectory``."""
    try:
        auth = GoogleAuthManager.get(account)
    except ValueError:
        logger.warning("No Google account configured; contact names will not be resolved")
        return NullDirectory()
    if not auth.enabled:
        logger.warning("No Google token for contacts; contact names will not be resolved")
        return NullDirectory()
    return GooglePeopleDirectory(auth)
