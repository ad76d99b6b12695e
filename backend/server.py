from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import admin_plans, admin_stores, admin_jobs, store_plan
from services.entitlement_errors import EntitlementError

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.mongodb import MongoDBJobStore

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler with MongoDB job store so jobs survive restarts
mongo_url = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
db_name = os.environ.get('DB_NAME', 'bundle_plans')

jobstores = {}
try:
    from pymongo import MongoClient
    mongo_client = MongoClient(mongo_url)
    jobstores['default'] = MongoDBJobStore(
        database=db_name,
        collection='scheduled_jobs',
        client=mongo_client
    )
    logger.info(f"MongoDB job store configured: {db_name}.scheduled_jobs")
except Exception as e:
    logger.warning(f"Failed to configure MongoDB job store, using memory store: {e}")
    jobstores = {}

scheduler = AsyncIOScheduler(jobstores=jobstores)

from job_runner import run_review_count_increment

# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.environ.get("PYTEST_RUNNING"):
        yield
        return

    # Startup
    logger.info("Starting Bundle Plans API")
    await database.connect()

    # Seed factory plans into the catalog (idempotent)
    try:
        from services.plan_lifecycle import plan_lifecycle_service
        plans = await plan_lifecycle_service.initialize_from_templates()
        logger.info(f"Plan catalog ready: {len(plans)} factory plans")
    except Exception as e:
        logger.error(f"Failed to seed plan catalog: {e}")

    # Review counters advance once a day
    scheduler.add_job(
        run_review_count_increment,
        IntervalTrigger(hours=24),
        id="review_count_increment",
        name="Daily Review Count Increment",
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down Bundle Plans API")
    scheduler.shutdown(wait=False)
    logger.info("Background job scheduler stopped")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Bundle Plans API",
    description="Subscription plan catalog and per-store entitlements",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(admin_plans.router)
app.include_router(admin_stores.router)
app.include_router(admin_jobs.router)
app.include_router(store_plan.router)

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Typed plan/entitlement errors: status from the error kind, body in the API envelope
@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request: Request, exc: EntitlementError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error_code": exc.error_code},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Request validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": errors, "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
