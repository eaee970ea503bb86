"""File-backed entity store for the authorization server.

All five tables (clients, users, authorization codes, access tokens and
refresh tokens) live in memory and are mirrored to a single JSON snapshot.
Every mutation rewrites the whole snapshot to a temporary file and renames
it over the canonical path, so the file on disk is always either the old
or the new complete state.
"""

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from single_user_mcp.core.exceptions import SnapshotWriteError, StorageError
from single_user_mcp.storage.models import (
    AccessToken,
    AuthorizationCode,
    OAuthClient,
    OAuthUser,
    RefreshToken,
    StoredRecord,
    StoreStats,
    utcnow,
)

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "oauth.json"

RecordT = TypeVar("RecordT", bound=StoredRecord)
T = TypeVar("T")


class Table(Generic[RecordT]):
    """Mapping from natural key to record for a single entity kind."""

    def __init__(self, name: str, model: type[RecordT], key_field: str) -> None:
        self.name = name
        self.model = model
        self.key_field = key_field
        self._rows: dict[str, RecordT] = {}

    def key_of(self, record: RecordT) -> str:
        return getattr(record, self.key_field)

    def put(self, record: RecordT, key: str | None = None) -> None:
        row_key = key if key is not None else self.key_of(record)
        self._rows[row_key] = record.model_copy(deep=True)

    def get(self, key: str) -> RecordT | None:
        record = self._rows.get(key)
        return record.model_copy(deep=True) if record is not None else None

    def values(self) -> list[RecordT]:
        # Returned records are copies; stored rows change only through a write
        return [record.model_copy(deep=True) for record in self._rows.values()]

    def check_updates(self, updates: dict[str, Any]) -> None:
        """Reject unknown field names and changes to the natural key."""
        unknown = sorted(set(updates) - set(self.model.model_fields))
        if unknown:
            msg = f"unknown {self.name} field(s): {', '.join(unknown)}"
            raise TypeError(msg)
        if self.key_field in updates:
            msg = f"{self.name} key field {self.key_field!r} cannot be updated"
            raise ValueError(msg)

    def pop(self, key: str) -> RecordT | None:
        return self._rows.pop(key, None)

    def remove_where(self, predicate: Callable[[RecordT], bool]) -> int:
        """Remove every record matching ``predicate`` and return how many went."""
        doomed = [key for key, record in self._rows.items() if predicate(record)]
        for key in doomed:
            del self._rows[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._rows)

    def dump(self) -> dict[str, Any]:
        return {
            key: record.model_dump(mode="json", by_alias=True)
            for key, record in self._rows.items()
        }

    def parse(self, raw: Any) -> dict[str, RecordT]:
        """Validate a serialized table without touching the live rows."""
        if not isinstance(raw, dict):
            msg = f"table {self.name!r} must be a JSON object"
            raise ValueError(msg)
        return {str(key): self.model.model_validate(value) for key, value in raw.items()}

    def replace_all(self, rows: dict[str, RecordT]) -> None:
        self._rows = dict(rows)


class FileStorage:
    """Persistent OAuth entity store backed by one JSON snapshot file.

    Mutations update the in-memory table first and then persist the full
    table set. Mutations are serialized with an ``asyncio.Lock`` so two
    snapshot writes never interleave. A snapshot write that has started is
    always allowed to finish, even if the awaiting caller is cancelled.

    Usage:
        storage = await FileStorage("./data").initialize()
    """

    def __init__(self, data_dir: str | Path, filename: str = SNAPSHOT_FILENAME) -> None:
        self._dir = Path(data_dir)
        self._file = self._dir / filename
        self._tmp_file = self._file.with_name(self._file.name + ".tmp")

        self.clients: Table[OAuthClient] = Table("clients", OAuthClient, "id")
        self.users: Table[OAuthUser] = Table("users", OAuthUser, "id")
        self.authorization_codes: Table[AuthorizationCode] = Table(
            "authorizationCodes", AuthorizationCode, "code"
        )
        self.access_tokens: Table[AccessToken] = Table(
            "accessTokens", AccessToken, "token"
        )
        self.refresh_tokens: Table[RefreshToken] = Table(
            "refreshTokens", RefreshToken, "token"
        )

        self._lock = asyncio.Lock()
        self._pending_write: asyncio.Future[None] | None = None

    @property
    def path(self) -> Path:
        """Canonical snapshot path."""
        return self._file

    @property
    def _tables(self) -> tuple[Table[Any], ...]:
        return (
            self.clients,
            self.users,
            self.authorization_codes,
            self.access_tokens,
            self.refresh_tokens,
        )

    # ========== Lifecycle ==========

    async def initialize(self) -> "FileStorage":
        """Load the snapshot, or establish an empty one, and return the store."""
        async with self._lock:
            loaded = await self._run_io(self._read_snapshot)
            if loaded:
                logger.info("Loaded OAuth snapshot from %s (%s)", self._file, self.get_stats())
            else:
                await self._flush()
                logger.info("Initialized empty OAuth snapshot at %s", self._file)
        return self

    async def close(self) -> None:
        """Wait for any snapshot write still in flight."""
        async with self._lock:
            await self._wait_for_pending_write()

    # ========== Clients ==========

    async def create_client(self, client: OAuthClient) -> None:
        await self._mutate(lambda: self.clients.put(client))

    async def get_client(self, client_id: str) -> OAuthClient | None:
        return self.clients.get(client_id)

    async def list_clients(self) -> list[OAuthClient]:
        return self.clients.values()

    async def update_client(self, client_id: str, **updates: Any) -> None:
        await self._update(self.clients, client_id, updates, stamp=True)

    async def delete_client(self, client_id: str) -> None:
        await self._mutate(lambda: self.clients.pop(client_id))

    # ========== Users ==========

    async def create_user(self, user: OAuthUser) -> None:
        await self._mutate(lambda: self.users.put(user))

    async def get_user(self, user_id: str) -> OAuthUser | None:
        return self.users.get(user_id)

    async def get_user_by_username(self, username: str) -> OAuthUser | None:
        return next(
            (user for user in self.users.values() if user.username == username),
            None,
        )

    async def list_users(self) -> list[OAuthUser]:
        return self.users.values()

    async def update_user(self, user_id: str, **updates: Any) -> None:
        await self._update(self.users, user_id, updates, stamp=True)

    async def delete_user(self, user_id: str) -> None:
        await self._mutate(lambda: self.users.pop(user_id))

    # ========== Authorization Codes ==========

    async def create_authorization_code(self, code: AuthorizationCode) -> None:
        await self._mutate(lambda: self.authorization_codes.put(code))

    async def get_authorization_code(self, code: str) -> AuthorizationCode | None:
        return self.authorization_codes.get(code)

    async def list_authorization_codes(self) -> list[AuthorizationCode]:
        return self.authorization_codes.values()

    async def update_authorization_code(self, code: str, **updates: Any) -> None:
        await self._update(self.authorization_codes, code, updates)

    async def delete_authorization_code(self, code: str) -> None:
        await self._mutate(lambda: self.authorization_codes.pop(code))

    async def cleanup_expired_codes(self, now: datetime | None = None) -> int:
        return await self._sweep(self.authorization_codes, now)

    # ========== Access Tokens ==========

    async def create_access_token(self, token: AccessToken) -> None:
        await self._mutate(lambda: self.access_tokens.put(token))

    async def get_access_token(self, token: str) -> AccessToken | None:
        return self.access_tokens.get(token)

    async def list_access_tokens(self) -> list[AccessToken]:
        return self.access_tokens.values()

    async def update_access_token(self, token: str, **updates: Any) -> None:
        await self._update(self.access_tokens, token, updates)

    async def delete_access_token(self, token: str) -> None:
        await self._mutate(lambda: self.access_tokens.pop(token))

    async def cleanup_expired_tokens(self, now: datetime | None = None) -> int:
        return await self._sweep(self.access_tokens, now)

    # ========== Refresh Tokens ==========

    async def create_refresh_token(self, token: RefreshToken) -> None:
        await self._mutate(lambda: self.refresh_tokens.put(token))

    async def get_refresh_token(self, token: str) -> RefreshToken | None:
        return self.refresh_tokens.get(token)

    async def list_refresh_tokens(self) -> list[RefreshToken]:
        return self.refresh_tokens.values()

    async def update_refresh_token(self, token: str, **updates: Any) -> None:
        await self._update(self.refresh_tokens, token, updates)

    async def delete_refresh_token(self, token: str) -> None:
        await self._mutate(lambda: self.refresh_tokens.pop(token))

    async def delete_refresh_tokens_by_access_token(self, access_token_id: str) -> int:
        """Remove every refresh token issued alongside ``access_token_id``."""
        return await self._mutate(
            lambda: self.refresh_tokens.remove_where(
                lambda record: record.access_token_id == access_token_id
            )
        )

    async def cleanup_expired_refresh_tokens(self, now: datetime | None = None) -> int:
        return await self._sweep(self.refresh_tokens, now)

    # ========== Utility ==========

    def get_stats(self) -> StoreStats:
        return StoreStats(
            clients=len(self.clients),
            users=len(self.users),
            authorization_codes=len(self.authorization_codes),
            access_tokens=len(self.access_tokens),
            refresh_tokens=len(self.refresh_tokens),
        )

    # ========== Internals ==========

    async def _mutate(self, change: Callable[[], T]) -> T:
        async with self._lock:
            result = change()
            await self._flush()
            return result

    async def _update(
        self,
        table: Table[RecordT],
        key: str,
        updates: dict[str, Any],
        *,
        stamp: bool = False,
    ) -> None:
        table.check_updates(updates)
        async with self._lock:
            existing = table.get(key)
            if existing is None:
                logger.debug("Ignoring update for missing %s entry", table.name)
                return
            merged = {**existing.model_dump(), **updates}
            if stamp:
                merged["updated_at"] = utcnow()
            table.put(table.model.model_validate(merged), key=key)
            await self._flush()

    async def _sweep(self, table: Table[RecordT], now: datetime | None) -> int:
        cutoff = now or utcnow()
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
        async with self._lock:
            removed = table.remove_where(lambda record: record.expires_at < cutoff)
            await self._flush()
        if removed:
            logger.info("Removed %d expired record(s) from %s", removed, table.name)
        return removed

    async def _run_io(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _flush(self) -> None:
        await self._wait_for_pending_write()
        payload = self._serialize()
        loop = asyncio.get_running_loop()
        write = loop.run_in_executor(None, self._write_snapshot, payload)
        self._pending_write = write
        try:
            await asyncio.shield(write)
        finally:
            # A cancelled caller leaves the write running; the next flush waits on it
            if write.done():
                self._pending_write = None

    async def _wait_for_pending_write(self) -> None:
        pending = self._pending_write
        if pending is None:
            return
        try:
            await asyncio.shield(pending)
        except SnapshotWriteError as e:
            logger.warning("Abandoned snapshot write failed: %s", e)
        finally:
            if pending.done() and self._pending_write is pending:
                self._pending_write = None

    def _serialize(self) -> str:
        return json.dumps({table.name: table.dump() for table in self._tables}, indent=2)

    def _write_snapshot(self, payload: str) -> None:
        try:
            with open(self._tmp_file, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(self._tmp_file, self._file)
        except OSError as e:
            with contextlib.suppress(OSError):
                self._tmp_file.unlink(missing_ok=True)
            msg = f"Failed to write snapshot {self._file}: {e}"
            raise SnapshotWriteError(msg) from e

    def _read_snapshot(self) -> bool:
        """Populate the tables from disk. Returns False when starting empty."""
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot create data directory {self._dir}: {e}"
            raise StorageError(msg) from e

        if not self._file.exists():
            return False

        try:
            raw = json.loads(self._file.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                msg = "snapshot root must be a JSON object"
                raise ValueError(msg)
            parsed = {table.name: table.parse(raw.get(table.name, {})) for table in self._tables}
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                "Discarding unreadable OAuth snapshot %s, starting with empty tables: %s",
                self._file,
                e,
            )
            self._quarantine()
            return False

        for table in self._tables:
            table.replace_all(parsed[table.name])
        return True

    def _quarantine(self) -> None:
        corrupt = self._file.with_name(self._file.name + ".corrupt")
        try:
            os.replace(self._file, corrupt)
        except OSError as e:
            logger.warning("Could not preserve corrupt snapshot as %s: %s", corrupt, e)
        else:
            logger.warning("Previous snapshot preserved as %s", corrupt)
