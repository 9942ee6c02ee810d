import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

import redis.asyncio as redis
from fastapi_limiter import FastAPILimiter

from .config import settings
from .database import Database
from .exceptions import register_exception_handlers
from .routers import booking_router, listing_router, payment_router, profile_router, user_router
from .outbox_poller import run_outbox_poller
from .notification_consumer import run_notification_consumer

logger = logging.getLogger("marketplace")


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def _stop_task(task: asyncio.Task, name: str):
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info(f"{name} task successfully cancelled.")
    except Exception as e:
        logger.error(f"Error during {name} shutdown: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Opens the database handle, the rate limiter and the notification
    pipeline, and closes them again on shutdown.
    """
    configure_logging()
    logger.info("Marketplace service starting up...")

    database = Database(settings.DATABASE_URL)
    # Alembic owns migrations; this only fills in missing tables
    database.create_all()
    app.state.db = database

    redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8")
    try:
        await FastAPILimiter.init(redis_client)
        logger.info("FastAPILimiter initialized with Redis.")
    except Exception as e:
        logger.error(f"Failed to initialize FastAPILimiter: {e}")

    poller_task = asyncio.create_task(run_outbox_poller(database))
    consumer_task = asyncio.create_task(run_notification_consumer())

    yield

    logger.info("Marketplace service shutting down...")
    await _stop_task(poller_task, "Outbox poller")
    await _stop_task(consumer_task, "Notification consumer")

    await redis_client.aclose()
    database.dispose()


app = FastAPI(
    title="Marketplace API",
    description="Listings, bookings and payments for vendors and buyers.",
    version="1.0.0",
    lifespan=lifespan
)

register_exception_handlers(app)

app.include_router(user_router.router)
app.include_router(listing_router.router)
app.include_router(booking_router.router)
app.include_router(payment_router.router)
app.include_router(profile_router.buyer_router)
app.include_router(profile_router.vendor_router)


@app.get("/")
def read_root():
    return {"message": "Welcome to the Marketplace API"}
