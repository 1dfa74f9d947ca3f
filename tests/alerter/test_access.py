"""Tests for the access policy."""

import pytest

from balance_watcher.alerter.access import AccessMode, AccessPolicy, normalize_identity


class TestNormalizeIdentity:
    """Tests for normalize_identity."""

    @pytest.mark.parametrize("raw", ["alice", "@alice", "Alice", " @ALICE "])
    def test_normalizes(self, raw: str) -> None:
        assert normalize_identity(raw) == "alice"


class TestAccessPolicy:
    """Tests for AccessPolicy."""

    def test_private_allows_listed(self) -> None:
        policy = AccessPolicy.private(["@Alice", "bob"])

        assert policy.mode is AccessMode.PRIVATE
        assert policy.allows("alice")
        assert policy.allows("@BOB")
        assert not policy.allows("carol")

    def test_private_rejects_missing_username(self) -> None:
        policy = AccessPolicy.private(["alice"])

        assert not policy.allows(None)
        assert not policy.allows("")

    def test_public_allows_everyone(self) -> None:
        policy = AccessPolicy.public()

        assert policy.is_public
        assert policy.allows("anyone")
        assert policy.allows(None)

    def test_from_allowed_users_all(self) -> None:
        assert AccessPolicy.from_allowed_users(["alice", "ALL"]).is_public

    def test_from_allowed_users_list(self) -> None:
        policy = AccessPolicy.from_allowed_users(["alice", "  "])

        assert not policy.is_public
        assert policy.allowed == frozenset({"alice"})

    def test_empty_list_allows_nobody(self) -> None:
        assert not AccessPolicy.from_allowed_users([]).allows("alice")
