"""Unit tests for per-case leases."""

import time

import pytest

from case_drafting.exceptions import LeaseUnavailableError
from case_drafting.persistence.lease import CaseLeaseManager


class TestLeaseExclusion:
    """Tests for mutual exclusion on a case."""

    def test_second_holder_is_rejected(self, db_manager):
        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        holder = leases.acquire("c1")
        with pytest.raises(LeaseUnavailableError) as exc_info:
            leases.acquire("c1")
        assert exc_info.value.case_id == "c1"
        leases.release("c1", holder)

    def test_release_allows_next_holder(self, db_manager):
        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        holder = leases.acquire("c1")
        leases.release("c1", holder)
        assert leases.acquire("c1") != holder

    def test_cases_are_independent(self, db_manager):
        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        leases.acquire("c1")
        assert leases.acquire("c2")

    def test_hold_releases_on_error(self, db_manager):
        """Test the with-block releases the lease when it raises."""
        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        with pytest.raises(RuntimeError):
            with leases.hold("c1"):
                raise RuntimeError("boom")
        with leases.hold("c1") as holder:
            assert holder

    def test_release_by_stranger_keeps_lease(self, db_manager):
        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        leases.acquire("c1")
        leases.release("c1", "someone-else")
        assert not leases.try_acquire("c1", "another")


class TestLeaseExpiry:
    """Tests for expiry, takeover and renewal."""

    def test_expired_lease_is_taken_over(self, db_manager):
        """Test a crashed holder cannot block the case forever."""
        short = CaseLeaseManager(db_manager, ttl=0.05, acquire_timeout=0)
        stale_holder = short.acquire("c1")
        time.sleep(0.1)

        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        holder = leases.acquire("c1")
        assert holder != stale_holder
        assert not short.renew("c1", stale_holder)

    def test_renew_keeps_lease(self, db_manager):
        leases = CaseLeaseManager(db_manager, acquire_timeout=0)
        holder = leases.acquire("c1")
        assert leases.renew("c1", holder)
        assert not leases.renew("c1", "not-the-holder")

    def test_waits_until_timeout(self, db_manager):
        """Test acquisition keeps retrying for the configured time."""
        leases = CaseLeaseManager(db_manager, acquire_timeout=0.3, retry_interval=0.05)
        leases.acquire("c1")
        started = time.monotonic()
        with pytest.raises(LeaseUnavailableError):
            leases.acquire("c1")
        assert time.monotonic() - started >= 0.3
