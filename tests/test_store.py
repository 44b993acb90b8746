"""
Tests for the owner -> provisioning record store
"""

import pytest
from sqlalchemy.orm import sessionmaker

from webprov.db import build_engine
from webprov.errors import StoreUnavailableError
from webprov.services.store import ProvisioningStore


class TestProvisioningStore:
    def test_missing_owner(self, store):
        assert store.find_by_owner("nobody") is None

    def test_upsert_project_then_chat(self, store):
        store.upsert_project("alice", "project_alice", "prj_1")
        store.upsert_chat("alice", "chat_1")
        store.update_deployment("alice", "dpl_1", "alice.trady.finance")

        rec = store.find_by_owner("alice")
        assert (rec.project_id, rec.chat_id, rec.deployment_id) == ("prj_1", "chat_1", "dpl_1")
        assert rec.custom_domain == "alice.trady.finance"

    def test_same_project_keeps_chat(self, store):
        store.upsert_project("alice", "project_alice", "prj_1")
        store.upsert_chat("alice", "chat_1")
        store.upsert_project("alice", "project_alice", "prj_1")
        assert store.find_by_owner("alice").chat_id == "chat_1"

    def test_new_project_clears_stale_ids(self, store):
        store.upsert_project("alice", "project_alice", "prj_1")
        store.upsert_chat("alice", "chat_1")
        store.update_deployment("alice", "dpl_1")

        store.upsert_project("alice", "project_alice", "prj_2")

        rec = store.find_by_owner("alice")
        assert rec.project_id == "prj_2"
        assert rec.chat_id is None
        assert rec.deployment_id is None

    def test_chat_without_record_is_ignored(self, store):
        store.upsert_chat("ghost", "chat_1")
        assert store.find_by_owner("ghost") is None

    def test_insert_race_reuses_winning_row(self, store, session_factory, monkeypatch):
        """A concurrent insert for the same owner resolves to one updated row."""
        ProvisioningStore(session_factory).upsert_project("alice", "project_alice", "prj_1")

        real_locked = store._locked
        seen = []

        def racing_locked(s, owner):
            seen.append(owner)
            # first read misses the row the other writer just committed
            return None if len(seen) == 1 else real_locked(s, owner)

        monkeypatch.setattr(store, "_locked", racing_locked)
        store.upsert_project("alice", "project_alice", "prj_2")

        assert len(seen) == 2
        assert store.find_by_owner("alice").project_id == "prj_2"

    def test_unreachable_database_is_transient(self, tmp_path):
        bad = build_engine(f"sqlite:///{tmp_path}/missing/dir/db.sqlite")
        store = ProvisioningStore(sessionmaker(bind=bad))
        with pytest.raises(StoreUnavailableError) as exc:
            store.find_by_owner("alice")
        assert exc.value.retryable is True
