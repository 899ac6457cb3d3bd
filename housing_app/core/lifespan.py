import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.rabbitmq import rabbitmq
from core.settings import settings

from .get_db import Base, async_engine

logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Waiting for application startup...")

    if settings.AUTO_CREATE_TABLES:
        try:
            import models.models  # noqa: F401

            async with async_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ensured.")
        except Exception:
            logger.exception("Failed to create database tables")

    if rabbitmq.enabled:
        try:
            await rabbitmq.declare_topic_with_dlq(
                settings.RABBITMQ_LIFECYCLE_EXCHANGE,
                f"{settings.RABBITMQ_LIFECYCLE_EXCHANGE}_queue",
            )
            logger.info("RabbitMQ connected.")
        except Exception:
            logger.exception("RabbitMQ connection failed")
    else:
        logger.info("RABBITMQ_URL not set, lifecycle events will not be published.")

    logger.info("Application startup complete.")

    yield

    try:
        await rabbitmq.close()
    except Exception:
        logger.exception("Failed to close RabbitMQ connection")

    await async_engine.dispose()
