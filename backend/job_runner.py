"""
Shared job runner for scheduled background jobs.
Used by server (scheduler) and admin (manual run).
Each run_* returns a dict with "message" and "count" for the admin toast.
"""
import logging

logger = logging.getLogger(__name__)


async def run_review_count_increment():
    try:
        from services.review_counter import increment_review_counts
        count = await increment_review_counts()
        logger.info(f"Review count job completed: {count} stores updated")
        return {"message": f"Review counts updated: {count}", "count": count}
    except Exception as e:
        logger.error(f"Review count job failed: {e}")
        raise


async def run_plan_catalog_seed():
    try:
        from services.plan_lifecycle import plan_lifecycle_service
        plans = await plan_lifecycle_service.initialize_from_templates()
        count = len(plans)
        logger.info(f"Plan catalog seed completed: {count} factory plans present")
        return {"message": f"Factory plans present: {count}", "count": count}
    except Exception as e:
        logger.error(f"Plan catalog seed failed: {e}")
        raise


JOB_RUNNERS = {
    "review_count_increment": run_review_count_increment,
    "plan_catalog_seed": run_plan_catalog_seed,
}
