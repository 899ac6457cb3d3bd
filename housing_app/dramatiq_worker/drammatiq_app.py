import logging

import dramatiq
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import AgeLimit, AsyncIO, Retries, TimeLimit

from core.settings import settings
from drammtiq_tasks.expire_agreements import (
    EXPIRE_AGREEMENTS_ACTOR,
    create_agreement_expiry_task,
)

logger = logging.getLogger(__name__)


class DramatiqManager:
    def __init__(self, start_scheduler: bool = True):
        self.REDIS_URL = settings.DRAMATIQ_REDIS_URL

        self.broker = RedisBroker(url=self.REDIS_URL)
        self.broker.add_middleware(AgeLimit(max_age=3600000))
        self.broker.add_middleware(TimeLimit(time_limit=600000))
        self.broker.add_middleware(Retries(max_retries=5))
        self.broker.add_middleware(AsyncIO())

        dramatiq.set_broker(self.broker)

        self._register_tasks()

        self.scheduler = BackgroundScheduler(timezone="UTC")
        self._register_cron_jobs()
        if start_scheduler:
            self.scheduler.start()

    def _register_tasks(self):
        create_agreement_expiry_task()

    def _register_cron_jobs(self):
        self.scheduler.add_job(
            func=lambda: self.delay(EXPIRE_AGREEMENTS_ACTOR),
            trigger=CronTrigger(minute=0),
            id="expire-due-agreements-hourly",
            replace_existing=True,
        )

    def ping(self) -> bool:
        try:
            self.broker.client.ping()
        except Exception as e:
            logger.error(f"Dramatiq broker unreachable at {self.REDIS_URL}: {e}")
            return False
        logger.info("Dramatiq broker reachable.")
        return True

    def delay(self, actor_name: str, *args, **kwargs):
        actor = self.broker.get_actor(actor_name)
        return actor.send(*args, **kwargs)


dramatiq_app = DramatiqManager()
