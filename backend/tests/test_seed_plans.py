"""
Factory plan seeding script tests.
"""
import pytest

from scripts.seed_plans import reset_factory_plans
from services.plan_lifecycle import plan_lifecycle_service


@pytest.mark.asyncio
class TestResetFactoryPlans:

    async def test_resets_every_factory_plan(self, fake_db):
        await plan_lifecycle_service.initialize_from_templates()
        await plan_lifecycle_service.update("pro", {"limits": {"maxBundles": 12}})

        assert await reset_factory_plans() == ["basic", "enterprise", "pro", "special"]
        assert (await plan_lifecycle_service.get_plan("pro")).limits.maxBundles == 10

    async def test_deleted_plan_is_skipped_and_rest_continue(self, fake_db, caplog):
        await plan_lifecycle_service.initialize_from_templates()
        await plan_lifecycle_service.delete("enterprise")

        with caplog.at_level("WARNING", logger="scripts.seed_plans"):
            reset_keys = await reset_factory_plans()

        assert reset_keys == ["basic", "pro", "special"]
        assert "Skipping reset of enterprise" in caplog.text
        assert await fake_db.audit_logs.count_documents({"action": "PLAN_RESET"}) == 3
