"""
Tests for the single-user credential gate.

Tests:
1. Key generation on first start and reuse on the next
2. authenticate() accepts only the active key
3. Key file permissions and failure handling
"""

import os
import re
import stat
import sys

import pytest

from single_user_mcp.auth.credentials import (
    CredentialGate,
    ensure_api_key,
    generate_api_key,
    single_user_identity,
)
from single_user_mcp.core.exceptions import KeyFileError

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestKeyLifecycle:
    """API key creation and reuse."""

    def test_generated_key_is_url_safe_and_long_enough(self):
        key = generate_api_key()

        assert len(key) >= 32
        assert URL_SAFE.match(key)
        assert generate_api_key() != key

    @pytest.mark.asyncio
    async def test_first_start_generates_and_persists_key(self, tmp_path):
        key_file = tmp_path / "nested" / "data" / "api_key.txt"

        gate = await CredentialGate.initialize(key_file)

        content = key_file.read_text()
        assert content.endswith("\n")
        key = content.strip()
        assert len(key) >= 32
        assert URL_SAFE.match(key)
        assert gate.has_key
        assert gate.key_file == key_file
        expected = single_user_identity()
        user = gate.authenticate(key)
        assert user.model_dump(exclude={"created_at", "updated_at"}) == expected.model_dump(
            exclude={"created_at", "updated_at"}
        )
        assert gate.authenticate("wrong") is None

    @pytest.mark.asyncio
    async def test_second_start_reuses_existing_key(self, tmp_path):
        key_file = tmp_path / "api_key.txt"
        first = await CredentialGate.initialize(key_file)
        key = key_file.read_text().strip()

        second = await CredentialGate.initialize(key_file)

        assert key_file.read_text().strip() == key
        assert second.authenticate(key) is not None
        assert first.masked_key() == second.masked_key()

    def test_empty_key_file_is_regenerated(self, tmp_path):
        key_file = tmp_path / "api_key.txt"
        key_file.write_text("   \n")

        key = ensure_api_key(key_file)

        assert key
        assert key_file.read_text() == key + "\n"

    def test_existing_key_is_trimmed(self, tmp_path):
        key_file = tmp_path / "api_key.txt"
        key_file.write_text("  operator-chosen-key \n")

        assert ensure_api_key(key_file) == "operator-chosen-key"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_key_file_is_owner_only(self, tmp_path):
        key_file = tmp_path / "api_key.txt"

        ensure_api_key(key_file)

        assert stat.S_IMODE(os.stat(key_file).st_mode) == 0o600

    def test_unwritable_location_raises_key_file_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")

        with pytest.raises(KeyFileError):
            ensure_api_key(blocker / "api_key.txt")


class TestAuthenticate:
    """The authentication decision."""

    def test_surrounding_whitespace_is_ignored(self, tmp_path):
        gate = CredentialGate(tmp_path / "k", "the-active-key")

        assert gate.authenticate("  the-active-key\n") is not None

    def test_case_and_prefix_mismatch_rejected(self, tmp_path):
        gate = CredentialGate(tmp_path / "k", "the-active-key")

        assert gate.authenticate("THE-ACTIVE-KEY") is None
        assert gate.authenticate("the-active") is None
        assert gate.authenticate("") is None
        assert gate.authenticate(None) is None

    def test_identity_is_the_fixed_single_user(self, tmp_path):
        gate = CredentialGate(tmp_path / "k", "the-active-key")

        user = gate.authenticate("the-active-key")

        assert user.id == "single-user"
        assert user.username == "single-user"
        assert user.name == "Single User"
        assert user.email == "single-user@example.com"
        assert user.scopes == ["read", "write"]

    def test_returned_identity_cannot_alter_gate(self, tmp_path):
        gate = CredentialGate(tmp_path / "k", "the-active-key")

        gate.authenticate("the-active-key").scopes.append("admin")

        assert gate.authenticate("the-active-key").scopes == ["read", "write"]

    def test_masked_key_shows_last_four_characters(self, tmp_path):
        gate = CredentialGate(tmp_path / "k", "abcdefgh1234")

        assert gate.masked_key() == "••••••••1234"
