"""Single-user credential gate.

The deployment has exactly one end user. Instead of a password, the login
page asks for a generated API key that is written once to a key file under
the data directory and reused until that file is removed.
"""

import asyncio
import logging
import os
import secrets
from pathlib import Path

from single_user_mcp.core.exceptions import KeyFileError
from single_user_mcp.storage.models import OAuthUser

logger = logging.getLogger(__name__)

API_KEY_BYTES = 24

SINGLE_USER_ID = "single-user"
SINGLE_USER_SCOPES = ("read", "write")


def generate_api_key() -> str:
    """Return a new URL-safe key (32 characters for 24 random bytes)."""
    return secrets.token_urlsafe(API_KEY_BYTES)


def single_user_identity() -> OAuthUser:
    """The one identity a successful login resolves to."""
    return OAuthUser(
        id=SINGLE_USER_ID,
        username=SINGLE_USER_ID,
        name="Single User",
        email="single-user@example.com",
        scopes=list(SINGLE_USER_SCOPES),
        profile={},
    )


def ensure_api_key(key_file: str | Path) -> str:
    """Read the persisted API key, generating and saving one if needed.

    Args:
        key_file: Path of the one-line key file

    Returns:
        The active key

    Raises:
        KeyFileError: If the directory or key file cannot be written
    """
    path = Path(key_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        msg = f"Cannot create directory for API key file {path}: {e}"
        raise KeyFileError(msg) from e

    try:
        existing = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        existing = ""
    except OSError as e:
        logger.warning("Could not read API key file %s: %s", path, e)
        existing = ""

    if existing:
        return existing

    key = generate_api_key()
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(key + "\n")
        # O_CREAT only applies the mode to new files
        os.chmod(path, 0o600)
    except OSError as e:
        msg = f"Cannot write API key file {path}: {e}"
        raise KeyFileError(msg) from e

    logger.info("Single-user API key generated and stored at: %s", path)
    return key


class CredentialGate:
    """Decides whether a presented secret is the active API key."""

    def __init__(self, key_file: str | Path, api_key: str) -> None:
        self._key_file = Path(key_file)
        self._api_key = api_key
        self._identity = single_user_identity()

    @classmethod
    async def initialize(cls, key_file: str | Path) -> "CredentialGate":
        """Materialize the API key and return a ready gate."""
        loop = asyncio.get_running_loop()
        api_key = await loop.run_in_executor(None, ensure_api_key, key_file)
        return cls(key_file, api_key)

    @property
    def key_file(self) -> Path:
        return self._key_file

    @property
    def has_key(self) -> bool:
        return bool(self._api_key)

    @property
    def identity(self) -> OAuthUser:
        return self._identity.model_copy(deep=True)

    def masked_key(self) -> str:
        """Key preview for the login page: everything but the last 4 characters hidden."""
        visible = self._api_key[-4:]
        return "•" * (len(self._api_key) - len(visible)) + visible

    def authenticate(self, candidate: str | None) -> OAuthUser | None:
        provided = (candidate or "").strip()
        if not provided or not self._api_key:
            return None
        if secrets.compare_digest(provided.encode(), self._api_key.encode()):
            return self.identity
        return None
