"""
Tests for IdentityResolver.

Tests cover:
- Account creation
- Resolution of missing, placeholder, error-marker, unknown and known ids
- Lookup-failure policy
- Account deletion cascading to voicemails
"""

from unittest.mock import patch

import pytest

from voicemail_log.errors import StorageUnavailable
from voicemail_log.repositories import (
    ERROR_MARKER_PREFIX,
    UNASSIGNED_SENTINEL,
    IdentityResolver,
    LookupErrorPolicy,
)

from tests.conftest import fetch_all_voicemails, make_input


class TestCreateAccount:
    def test_returns_new_existing_id(self, resolver):
        account_id = resolver.create_account()

        assert account_id
        assert resolver.account_exists(account_id)

    def test_ids_are_unique(self, resolver):
        ids = {resolver.create_account() for _ in range(5)}
        assert len(ids) == 5

    def test_storage_failure_propagates(self, resolver):
        with patch.object(resolver.db, "session", side_effect=StorageUnavailable("down")):
            with pytest.raises(StorageUnavailable):
                resolver.create_account()


class TestResolveOrCreateAccount:
    @pytest.mark.parametrize("candidate", [None, "", UNASSIGNED_SENTINEL])
    def test_unassigned_candidates_get_fresh_account(self, resolver, account, candidate):
        resolved = resolver.resolve_or_create_account(candidate)

        assert resolved != account
        assert resolver.account_exists(resolved)

    def test_placeholder_never_reuses(self, resolver):
        first = resolver.resolve_or_create_account(UNASSIGNED_SENTINEL)
        second = resolver.resolve_or_create_account(UNASSIGNED_SENTINEL)

        assert first != second

    def test_error_marker_gets_fresh_account(self, resolver):
        resolved = resolver.resolve_or_create_account(f"{ERROR_MARKER_PREFIX}: could not connect")

        assert not resolved.startswith(ERROR_MARKER_PREFIX)
        assert resolver.account_exists(resolved)

    def test_known_account_is_returned_unchanged(self, resolver, account):
        assert resolver.resolve_or_create_account(account) == account

    def test_unknown_account_gets_fresh_account(self, resolver):
        resolved = resolver.resolve_or_create_account("00000000-0000-0000-0000-000000000000")

        assert resolved != "00000000-0000-0000-0000-000000000000"
        assert resolver.account_exists(resolved)

    def test_lookup_failure_creates_new_by_default(self, resolver, account):
        with patch.object(resolver, "account_exists", side_effect=StorageUnavailable("flaky")):
            resolved = resolver.resolve_or_create_account(account)

        assert resolved != account
        assert resolver.account_exists(resolved)

    def test_lookup_failure_raises_under_strict_policy(self, db, account):
        strict = IdentityResolver(db, on_lookup_error=LookupErrorPolicy.RAISE)

        with patch.object(strict, "account_exists", side_effect=StorageUnavailable("flaky")):
            with pytest.raises(StorageUnavailable):
                strict.resolve_or_create_account(account)

    def test_policy_accepts_config_strings(self, db):
        assert IdentityResolver(db, on_lookup_error="raise").on_lookup_error is LookupErrorPolicy.RAISE


class TestDeleteAccount:
    def test_cascades_to_voicemails(self, resolver, store, account):
        other = resolver.create_account()
        store.create(account, make_input(from_name="Mine"))
        store.create(other, make_input(from_name="Theirs"))

        assert resolver.delete_account(account) is True

        assert not resolver.account_exists(account)
        assert store.list_active(account) == []
        remaining = fetch_all_voicemails(resolver.db)
        assert [v.from_name for v in remaining] == ["Theirs"]

    def test_unknown_account_is_noop(self, resolver):
        assert resolver.delete_account("no-such-account") is True
