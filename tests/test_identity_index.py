"""
Tests for IdentityDirectory and IdentityIndex.
"""
import pytest

from sam.services.identity_directory import IdentityDirectory, IdentityRecord
from sam.services.identity_index import IdentityIndex

pytestmark = pytest.mark.unit


class TestIdentityDirectory:
    """Tests for reading the directory export."""

    def test_fetch_all_in_order(self, directory):
        records = directory.fetch_all()
        assert [r.id for r in records] == ["me-1", "alice-1", "bob-1"]
        assert records[2].email_aliases == ["Bob.Jones@Work.example"]

    def test_fetch_me_from_file(self, directory):
        me = directory.fetch_me()
        assert me is not None
        assert me.id == "me-1"

    def test_me_override(self, write_directory, identities):
        directory = IdentityDirectory(write_directory(identities), me_id="alice-1")
        assert directory.fetch_me().id == "alice-1"

    def test_bare_list_format(self, write_directory, identities):
        directory = IdentityDirectory(write_directory(identities["identities"]))
        assert len(directory.fetch_all()) == 3

    def test_missing_file_is_empty(self, tmp_path, mock_settings):
        directory = IdentityDirectory(str(tmp_path / "missing.json"))
        assert directory.fetch_all() == []
        assert directory.fetch_me() is None

    def test_unknown_keys_ignored(self):
        record = IdentityRecord.from_dict({"id": "x", "display_name": "X", "company": "Acme"})
        assert record.id == "x"
        assert record.all_emails == []

    def test_rereads_on_every_fetch(self, write_directory, identities):
        path = write_directory(identities)
        directory = IdentityDirectory(path)
        assert len(directory.fetch_all()) == 3

        write_directory({"identities": identities["identities"][:1]})
        assert len(directory.fetch_all()) == 1


class TestIdentityIndex:
    """Tests for the per-pass lookup sets."""

    @pytest.fixture
    def index(self, directory):
        return IdentityIndex.from_directory(directory)

    def test_known_emails_include_aliases(self, index):
        assert "alice@example.com" in index.known_emails
        assert "bob.jones@work.example" in index.known_emails

    def test_me_emails(self, index):
        assert index.is_me_email("owner@work.example")
        assert not index.is_me_email("alice@example.com")

    def test_empty_keys_never_match(self, index):
        assert not index.is_known_email(None)
        assert not index.is_me_email("")
        assert index.match_by_emails([None, ""]) == []
        assert index.match_by_phones([None]) == []

    def test_match_by_emails_directory_order(self, index):
        matched = index.match_by_emails(["bob@example.com", "alice@example.com", "alice@example.com"])
        assert [r.id for r in matched] == ["alice-1", "bob-1"]

    def test_match_by_alias(self, index):
        matched = index.match_by_emails(["bob.jones@work.example"])
        assert [r.id for r in matched] == ["bob-1"]

    def test_match_by_phone(self, index):
        assert [r.id for r in index.match_by_phones(["4155550100"])] == ["alice-1"]
        assert index.match_by_phones(["4155550199"]) == []

    def test_get(self, index):
        assert index.get("bob-1").display_name == "Bob Jones"
        assert index.get("nobody") is None

    def test_unreadable_directory_yields_empty_index(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        index = IdentityIndex.from_directory(IdentityDirectory(str(path)))
        assert index.records == []
        assert index.known_emails == set()

    def test_without_me(self, write_directory, identities, mock_settings):
        data = {"identities": identities["identities"]}
        index = IdentityIndex.from_directory(IdentityDirectory(write_directory(data)))
        assert index.me is None
        assert index.me_emails == set()
        # me's emails still count as known because the record is in the directory
        assert index.is_known_email("me@example.com")
