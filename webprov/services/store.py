"""
Owner -> project/chat/deployment mapping backing provisioning idempotency
"""
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from ..db import SessionLocal, session_scope
from ..errors import StoreUnavailableError
from ..models.provisioning_record import ProvisioningRecord

logger = logging.getLogger("webprov.store")


class ProvisioningStore:
    """Keyed by sanitized owner; one row per owner (unique constraint).

    Read-then-write sequences run in one transaction with SELECT ... FOR UPDATE.
    An insert that loses the unique-owner race re-reads the winning row and
    updates it instead.
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        try:
            with session_scope(self._session_factory) as s:
                yield s
        except IntegrityError:
            raise
        except OperationalError as e:
            raise StoreUnavailableError(f"provisioning store unavailable: {e.orig}") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise StoreUnavailableError(f"provisioning store connection lost: {e.orig}") from e
            raise

    def _locked(self, s, owner: str) -> Optional[ProvisioningRecord]:
        stmt = select(ProvisioningRecord).where(ProvisioningRecord.owner == owner).with_for_update()
        return s.execute(stmt).scalar_one_or_none()

    def find_by_owner(self, owner: str) -> Optional[ProvisioningRecord]:
        with self._session() as s:
            rec = s.execute(
                select(ProvisioningRecord).where(ProvisioningRecord.owner == owner)
            ).scalar_one_or_none()
            if rec is not None:
                s.expunge(rec)
            return rec

    def upsert_project(self, owner: str, project_name: str, project_id: str) -> None:
        for attempt in (1, 2):
            try:
                with self._session() as s:
                    rec = self._locked(s, owner)
                    if rec is None:
                        s.add(ProvisioningRecord(owner=owner, project_name=project_name, project_id=project_id))
                        s.flush()
                        logger.info("Inserted provisioning record", extra={"component": "store", "owner": owner})
                        return
                    if rec.project_id != project_id:
                        # chat and deployment belong to the replaced project
                        rec.chat_id = None
                        rec.deployment_id = None
                    rec.project_name = project_name
                    rec.project_id = project_id
                    logger.info("Updated provisioning record project", extra={"component": "store", "owner": owner})
                    return
            except IntegrityError:
                if attempt == 2:
                    raise
                logger.warning("Concurrent insert for owner %s; reusing existing record", owner,
                               extra={"component": "store"})

    def upsert_chat(self, owner: str, chat_id: str) -> None:
        with self._session() as s:
            rec = self._locked(s, owner)
            if rec is None:
                logger.warning("No provisioning record for owner %s; chat id not stored", owner,
                               extra={"component": "store"})
                return
            rec.chat_id = chat_id

    def update_deployment(self, owner: str, deployment_id: str, custom_domain: Optional[str] = None) -> None:
        with self._session() as s:
            rec = self._locked(s, owner)
            if rec is None:
                return
            rec.deployment_id = deployment_id
            if custom_domain:
                rec.custom_domain = custom_domain
