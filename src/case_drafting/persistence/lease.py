"""Per-case leases stored in the database."""

import logging
import time
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Generator, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..exceptions import LeaseUnavailableError, PersistenceError
from ..utils import utcnow
from .database import DatabaseManager
from .models import CaseLeaseModel


logger = logging.getLogger(__name__)


class CaseLeaseManager:
    """
    Serializes work on a case across threads and processes.

    A lease is a row in case_leases. It is acquired by inserting the row,
    or by taking over a row whose expires_at has passed. Leases expire on
    their own so a crashed worker cannot block a case forever.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        ttl: float = 300.0,
        acquire_timeout: float = 30.0,
        retry_interval: float = 0.2,
    ):
        """
        Initialize the lease manager.

        Args:
            db_manager: Database manager holding the case_leases table.
            ttl: Seconds a lease stays valid once acquired.
            acquire_timeout: Seconds to keep trying before giving up.
            retry_interval: Seconds between acquisition attempts.
        """
        self._db_manager = db_manager
        self._ttl = ttl
        self._acquire_timeout = acquire_timeout
        self._retry_interval = retry_interval

    def try_acquire(self, case_id: str, holder: str) -> bool:
        """Make a single attempt to take the lease."""
        now = utcnow()
        expires_at = now + timedelta(seconds=self._ttl)
        session = self._db_manager.session_factory()
        try:
            try:
                session.add(CaseLeaseModel(
                    case_id=case_id,
                    holder=holder,
                    acquired_at=now,
                    expires_at=expires_at,
                ))
                session.commit()
                return True
            except IntegrityError:
                session.rollback()

            result = session.execute(
                update(CaseLeaseModel)
                .where(CaseLeaseModel.case_id == case_id)
                .where(CaseLeaseModel.expires_at < now)
                .values(holder=holder, acquired_at=now, expires_at=expires_at)
            )
            session.commit()
            if result.rowcount == 1:
                logger.warning(f"Took over expired lease on case {case_id}")
                return True
            return False
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Lease acquisition failed: {e}", case_id=case_id) from e
        finally:
            session.close()

    def acquire(self, case_id: str, timeout: Optional[float] = None) -> str:
        """
        Acquire the lease, waiting up to the acquire timeout.

        Args:
            case_id: Case to lease.
            timeout: Overrides the configured acquire timeout.

        Returns:
            The holder token to pass to release().

        Raises:
            LeaseUnavailableError: If the lease could not be taken in time.
        """
        holder = str(uuid.uuid4())
        timeout = self._acquire_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while True:
            if self.try_acquire(case_id, holder):
                logger.debug(f"Lease on case {case_id} acquired by {holder}")
                return holder
            if time.monotonic() >= deadline:
                raise LeaseUnavailableError(
                    f"Case is locked by another operation (waited {timeout:.1f}s)",
                    case_id=case_id,
                )
            time.sleep(self._retry_interval)

    def renew(self, case_id: str, holder: str) -> bool:
        """Extend a held lease. Returns False if the lease was lost."""
        with self._db_manager.get_session() as session:
            result = session.execute(
                update(CaseLeaseModel)
                .where(CaseLeaseModel.case_id == case_id)
                .where(CaseLeaseModel.holder == holder)
                .values(expires_at=utcnow() + timedelta(seconds=self._ttl))
            )
            return result.rowcount == 1

    def release(self, case_id: str, holder: str) -> None:
        """Release the lease if it is still held by holder."""
        with self._db_manager.get_session() as session:
            session.execute(
                delete(CaseLeaseModel)
                .where(CaseLeaseModel.case_id == case_id)
                .where(CaseLeaseModel.holder == holder)
            )
        logger.debug(f"Lease on case {case_id} released by {holder}")

    @contextmanager
    def hold(self, case_id: str, timeout: Optional[float] = None) -> Generator[str, None, None]:
        """
        Hold the lease for the duration of a with-block.

        Example:
            with lease_manager.hold(case_id):
                ...
        """
        holder = self.acquire(case_id, timeout=timeout)
        try:
            yield holder
        finally:
            self.release(case_id, holder)
