"""
Tests for CreditLedger.

Authorization arithmetic, settlement bounds and overspend detection,
against a real SQLite database.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY
from structlog.testing import capture_logs

from alchemist.db.session import Database
from alchemist.exceptions import (
    InvalidKeyError,
    SettleExceedsAuthorizationError,
    StorageUnavailableError,
)
from alchemist.models.api import KeyStatus
from alchemist.models.domain import AccessKeyData, Authorization
from alchemist.services.credit_ledger import CreditLedger
from alchemist.services.key_store import KeyStore
from tests.conftest import make_key, read_key

KEY_ID = "KWA-TST-KEY-01"


def sample(name: str) -> float:
    return REGISTRY.get_sample_value(name) or 0.0


class TestAuthorize:
    """Tests for credit authorization."""

    async def test_request_larger_than_balance(self, database: Database) -> None:
        """Scenario: 10 credits, 15 requested -> 10 allowed, then settle to zero."""
        await make_key(database, credits=10)

        async with database.session() as session:
            ledger = CreditLedger(KeyStore(session))
            authorization = await ledger.authorize(KEY_ID, 15)

            assert authorization.allowed == 10
            assert authorization.remaining == 10
            assert authorization.is_partial

            remaining = await ledger.settle(authorization, 10)

        assert remaining == 0
        key = await read_key(database, KEY_ID)
        assert key is not None
        assert key.credits_used == 10
        assert key.credits_remaining == 0

    async def test_request_within_balance(self, database: Database) -> None:
        await make_key(database, credits=10, credits_used=4)

        async with database.session() as session:
            authorization = await CreditLedger(KeyStore(session)).authorize(KEY_ID, 5)

        assert authorization.allowed == 5
        assert authorization.remaining == 6
        assert not authorization.is_partial

    async def test_zero_requested(self, database: Database) -> None:
        """Requesting nothing is allowed and reserves nothing."""
        await make_key(database, credits=10)

        async with database.session() as session:
            authorization = await CreditLedger(KeyStore(session)).authorize(KEY_ID, 0)

        assert authorization.allowed == 0
        assert authorization.remaining == 10

    async def test_exhausted_key(self, database: Database) -> None:
        """A key with nothing left is authorized for zero items."""
        await make_key(database, credits=3, credits_used=3)

        async with database.session() as session:
            authorization = await CreditLedger(KeyStore(session)).authorize(KEY_ID, 2)

        assert authorization.allowed == 0
        assert authorization.remaining == 0

    async def test_authorize_reserves_nothing(self, database: Database) -> None:
        await make_key(database, credits=10)

        async with database.session() as session:
            await CreditLedger(KeyStore(session)).authorize(KEY_ID, 7)

        key = await read_key(database, KEY_ID)
        assert key is not None
        assert key.credits_used == 0

    async def test_unknown_key(self, database: Database) -> None:
        async with database.session() as session:
            with pytest.raises(InvalidKeyError) as exc_info:
                await CreditLedger(KeyStore(session)).authorize("KWA-NOT-HER-EE", 1)

        assert exc_info.value.key_id == "KWA-NOT-HER-EE"

    async def test_suspended_key_is_invalid(self, database: Database) -> None:
        """Inactive keys cannot be authorized."""
        await make_key(database, status=KeyStatus.SUSPENDED)

        async with database.session() as session:
            with pytest.raises(InvalidKeyError):
                await CreditLedger(KeyStore(session)).authorize(KEY_ID, 1)

    async def test_negative_request_rejected(self) -> None:
        with pytest.raises(ValueError):
            await CreditLedger(AsyncMock()).authorize(KEY_ID, -1)

    async def test_overspent_key_reports_zero_remaining(self, fixed_datetime) -> None:
        """A key already past its total never reports negative remaining."""
        store = MagicMock(spec=KeyStore)
        store.get = AsyncMock(
            return_value=AccessKeyData(
                key_id=KEY_ID,
                plan="basic",
                credits_total=10,
                credits_used=12,
                status=KeyStatus.ACTIVE,
                email=None,
                created_at=fixed_datetime,
            )
        )

        authorization = await CreditLedger(store).authorize(KEY_ID, 3)

        assert authorization.remaining == 0
        assert authorization.allowed == 0


class TestSettle:
    """Tests for credit settlement."""

    async def test_settle_more_than_allowed_raises(self, database: Database) -> None:
        await make_key(database, credits=10)

        async with database.session() as session:
            ledger = CreditLedger(KeyStore(session))
            authorization = await ledger.authorize(KEY_ID, 3)
            with pytest.raises(SettleExceedsAuthorizationError) as exc_info:
                await ledger.settle(authorization, 4)

        assert exc_info.value.authorized == 3
        assert exc_info.value.consumed == 4
        key = await read_key(database, KEY_ID)
        assert key is not None
        assert key.credits_used == 0

    async def test_settle_zero_is_noop(self) -> None:
        """Settling nothing never touches the store."""
        store = MagicMock(spec=KeyStore)
        store.debit = AsyncMock()
        authorization = Authorization(key_id=KEY_ID, requested=2, allowed=2, remaining=5)

        remaining = await CreditLedger(store).settle(authorization, 0)

        assert remaining == 5
        store.debit.assert_not_awaited()

    async def test_settle_fewer_than_allowed(self, database: Database) -> None:
        """Only consumed credits are debited."""
        await make_key(database, credits=10)

        async with database.session() as session:
            ledger = CreditLedger(KeyStore(session))
            authorization = await ledger.authorize(KEY_ID, 5)
            remaining = await ledger.settle(authorization, 2)

        assert remaining == 8

    async def test_negative_consumed_rejected(self) -> None:
        authorization = Authorization(key_id=KEY_ID, requested=2, allowed=2, remaining=5)
        with pytest.raises(ValueError):
            await CreditLedger(MagicMock(spec=KeyStore)).settle(authorization, -1)

    async def test_storage_failure_propagates(self) -> None:
        store = MagicMock(spec=KeyStore)
        store.debit = AsyncMock(side_effect=StorageUnavailableError("debit", "down"))
        authorization = Authorization(key_id=KEY_ID, requested=1, allowed=1, remaining=5)

        with pytest.raises(StorageUnavailableError):
            await CreditLedger(store).settle(authorization, 1)

    async def test_racing_settlements_overspend_is_visible(self, database: Database) -> None:
        """Two requests authorized on the same balance both settle; usage exceeds total."""
        await make_key(database, credits=3)
        overspend_before = sample("alchemist_overspend_detections_total")

        async with database.session() as session:
            first = await CreditLedger(KeyStore(session)).authorize(KEY_ID, 3)
        async with database.session() as session:
            second = await CreditLedger(KeyStore(session)).authorize(KEY_ID, 3)

        async def settle(authorization: Authorization) -> int:
            async with database.session() as session:
                return await CreditLedger(KeyStore(session)).settle(authorization, 3)

        with capture_logs() as logs:
            results = await asyncio.gather(settle(first), settle(second))

        assert sorted(results) == [0, 0]
        key = await read_key(database, KEY_ID)
        assert key is not None
        assert key.credits_used == 6
        assert key.credits_remaining == 0

        overspends = [log for log in logs if log["event"] == "credit_overspend_detected"]
        assert len(overspends) == 1
        assert overspends[0]["log_level"] == "warning"
        assert overspends[0]["key_id"] == KEY_ID
        assert overspends[0]["credits_used"] == 6
        assert overspends[0]["overspend"] == 3
        assert sample("alchemist_overspend_detections_total") == overspend_before + 1

    async def test_exact_spend_is_not_an_overspend(self, database: Database) -> None:
        await make_key(database, credits=3)
        overspend_before = sample("alchemist_overspend_detections_total")

        with capture_logs() as logs:
            async with database.session() as session:
                ledger = CreditLedger(KeyStore(session))
                authorization = await ledger.authorize(KEY_ID, 3)
                await ledger.settle(authorization, 3)

        assert "credit_overspend_detected" not in [log["event"] for log in logs]
        assert sample("alchemist_overspend_detections_total") == overspend_before

    async def test_concurrent_settlements_are_all_counted(self, database: Database) -> None:
        """N concurrent single-credit settlements add exactly N."""
        await make_key(database, credits=50)
        n = 20

        async def authorize_and_settle() -> None:
            async with database.session() as session:
                ledger = CreditLedger(KeyStore(session))
                authorization = await ledger.authorize(KEY_ID, 1)
                await ledger.settle(authorization, 1)

        await asyncio.gather(*(authorize_and_settle() for _ in range(n)))

        key = await read_key(database, KEY_ID)
        assert key is not None
        assert key.credits_used == n
