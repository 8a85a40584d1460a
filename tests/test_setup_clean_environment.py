"""
Tests for the clean environment setup script.
"""

from alchemist.db.session import Database
from alchemist.models.api import Plan
from alchemist.services.key_store import KeyStore
from scripts.setup_clean_environment import ADMIN_CREDITS, ADMIN_EMAIL, setup_clean_environment
from tests.conftest import make_key, read_key


class TestSetupCleanEnvironment:
    async def test_replaces_all_keys_with_admin_key(self, database: Database) -> None:
        await make_key(database, "KWA-OLD-KEY-01")
        await make_key(database, "KWA-OLD-KEY-02")

        key = await setup_clean_environment(database)

        assert key.plan == Plan.PRO
        assert key.credits_total == ADMIN_CREDITS
        assert key.email == ADMIN_EMAIL
        assert await read_key(database, "KWA-OLD-KEY-01") is None
        async with database.session() as session:
            assert await KeyStore(session).count_keys() == 1

    async def test_custom_email_and_credits(self, database: Database) -> None:
        key = await setup_clean_environment(database, email="ops@example.com", credits=50)

        stored = await read_key(database, key.key_id)
        assert stored is not None
        assert stored.credits_total == 50
        assert stored.email == "ops@example.com"
