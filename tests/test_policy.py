"""Tests for native_secrets.metadata.policy — pure predicates."""

from native_secrets.metadata.models import NamespaceMetadata, SecretMetadata, ShareGrant
from native_secrets.metadata.policy import can_approve, has_access, is_owner


def _doc(**secrets):
    return NamespaceMetadata(namespace="team-a", secrets=secrets)


def _secret(owner="alice@x.com", fingerprint="sha256:aaa", grants=()):
    return SecretMetadata(owner=owner, fingerprint=fingerprint, shared_with=list(grants))


def _grant(to, fingerprint="sha256:aaa"):
    return ShareGrant(key="DB_PASS", fingerprint=fingerprint, shared_by="alice@x.com", shared_to=to)


class TestIsOwner:
    def test_owner(self):
        assert is_owner(_doc(DB_PASS=_secret()), "DB_PASS", "alice@x.com")

    def test_other_user(self):
        assert not is_owner(_doc(DB_PASS=_secret()), "DB_PASS", "bob@x.com")

    def test_missing_key(self):
        assert not is_owner(_doc(), "DB_PASS", "alice@x.com")


class TestHasAccess:
    def test_owner_always(self):
        doc = _doc(DB_PASS=_secret(fingerprint="sha256:new"))
        assert has_access(doc, "DB_PASS", "alice@x.com")

    def test_grant_with_current_fingerprint(self):
        doc = _doc(DB_PASS=_secret(grants=[_grant("bob@x.com")]))
        assert has_access(doc, "DB_PASS", "bob@x.com")

    def test_stale_grant(self):
        doc = _doc(DB_PASS=_secret(fingerprint="sha256:bbb", grants=[_grant("bob@x.com")]))
        assert not has_access(doc, "DB_PASS", "bob@x.com")

    def test_any_matching_grant_suffices(self):
        grants = [_grant("bob@x.com", "sha256:old"), _grant("bob@x.com", "sha256:aaa")]
        doc = _doc(DB_PASS=_secret(grants=grants))
        assert has_access(doc, "DB_PASS", "bob@x.com")

    def test_grant_for_someone_else(self):
        doc = _doc(DB_PASS=_secret(grants=[_grant("carol@x.com")]))
        assert not has_access(doc, "DB_PASS", "bob@x.com")

    def test_missing_key(self):
        assert not has_access(_doc(), "DB_PASS", "alice@x.com")


class TestCanApprove:
    def test_matches_access(self):
        doc = _doc(DB_PASS=_secret(grants=[_grant("bob@x.com")]))
        assert can_approve(doc, "DB_PASS", "alice@x.com")
        assert can_approve(doc, "DB_PASS", "bob@x.com")
        assert not can_approve(doc, "DB_PASS", "carol@x.com")
