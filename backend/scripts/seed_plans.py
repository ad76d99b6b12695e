"""
Seed the plan catalog with the factory plans.
Run once per environment; existing plans are left untouched unless --reset is given.

    python scripts/seed_plans.py            # insert missing factory plans
    python scripts/seed_plans.py --reset    # also reset every factory plan to its template
"""
import asyncio
import logging
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import database
from services.entitlement_errors import NotFoundError
from services.plan_lifecycle import plan_lifecycle_service
from services.plan_registry import PLAN_TEMPLATES

logger = logging.getLogger(__name__)

SCRIPT_ACTOR = {"sub": "seed_plans", "role": "SYSTEM"}


async def reset_factory_plans() -> list:
    """Reset each factory plan; deleted plans are skipped. Returns the keys reset."""
    reset_keys = []
    for key in sorted(PLAN_TEMPLATES):
        try:
            plan = await plan_lifecycle_service.reset(key, actor=SCRIPT_ACTOR)
        except NotFoundError as e:
            logger.warning(f"Skipping reset of {key}: {e.message}")
            continue
        print(f"Reset {key} (version {plan.version})")
        reset_keys.append(key)
    return reset_keys


async def seed_plans(reset: bool = False):
    await database.connect()
    try:
        plans = await plan_lifecycle_service.initialize_from_templates()
        print(f"Factory plans present: {', '.join(p.key for p in plans)}")

        if reset:
            await reset_factory_plans()
    finally:
        await database.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_plans(reset="--reset" in sys.argv[1:]))
