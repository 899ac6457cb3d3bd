import logging

from core.settings import settings

from .rabbitmq import rabbitmq

logger = logging.getLogger(__name__)


async def publish_event(event_name: str, data: dict):
    if not rabbitmq.enabled:
        logger.debug(f"RabbitMQ disabled, dropping {event_name}")
        return None

    return await rabbitmq.publish_json(
        exchange_name=settings.RABBITMQ_LIFECYCLE_EXCHANGE,
        routing_key=event_name,
        data=data,
    )
