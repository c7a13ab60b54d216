"""Google OAuth2 credentials for the People API contact directory."""

import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from memoryline.config import settings

logger = logging.getLogger(__name__)


class GoogleAuthManager:
    """Read-only contacts credentials for one Google account.

    Managers are cached per account name; ``get()`` without an argument
    returns the one for ``GOOGLE_ACCOUNT``.  The token file is written by
    ``scripts/google_auth.py``.
    """

    _instances: dict[str, "GoogleAuthManager"] = {}

    SCOPES = ["https://www.googleapis.com/auth/contacts.readonly"]

    def __init__(self, account: str, token_path: Path) -> None:
        self._account = account
        self._token_path = token_path
        self._credentials: Credentials | None = None

    @classmethod
    def token_path_for(cls, account: str) -> Path:
        return settings.google_token_dir / f"google_{account}_auth_token.json"

    @classmethod
    def get(cls, account: str | None = None) -> "GoogleAuthManager":
        name = (account or settings.google_account).strip()
        if not name:
            msg = "GOOGLE_ACCOUNT is not configured."
            raise ValueError(msg)
        return cls._instances.setdefault(name, cls(name, cls.token_path_for(name)))

    @property
    def account(self) -> str:
        return self._account

    @property
    def enabled(self) -> bool:
        """True once the account has been authorised on this machine."""
        return self._token_path.exists()

    def credentials(self) -> Credentials:
        """Return usable credentials, refreshing and re-saving an expired token."""
        creds = self._credentials
        if creds is None:
            if not self._token_path.exists():
                msg = (
                    f"No contacts token at {self._token_path}. Authorise with "
                    f"`python scripts/google_auth.py --account {self._account}`."
                )
                raise FileNotFoundError(msg)
            creds = Credentials.from_authorized_user_file(str(self._token_path), self.SCOPES)

        if creds.expired and creds.refresh_token:
            logger.info("Refreshing contacts token for account '%s'", self._account)
            creds.refresh(Request())
            self._token_path.write_text(creds.to_json(), encoding="utf-8")

        self._credentials = creds
        return creds

    def people(self):  # noqa: ANN201
        """Build a People API v1 service."""
        return build("people", "v1", credentials=self.credentials(), cache_discovery=False)
