import logging
import os
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from models.enums import CapacityFailurePolicy, SigningOrder

load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    PROJECT_NAME: str = "STUDENT HOUSING BOOKING CORE"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./housing.db")
    DB_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = False
    RABBITMQ_URL: str = os.getenv("RABBITMQ_URL", "")
    RABBITMQ_LIFECYCLE_EXCHANGE: str = "lifecycle_events"
    RABBITMQ_DLX: str = "dead_letter_exchange"
    RABBITMQ_DLX_QUEUE: str = "dead_letter_queue"
    DRAMATIQ_REDIS_URL: str = os.getenv(
        "DRAMATIQ_REDIS_URL", "redis://localhost:6379/0"
    )
    LOCK_TIMEOUT_SECONDS: float = 5.0
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 15.0
    CAPACITY_FAILURE_POLICY: CapacityFailurePolicy = CapacityFailurePolicy.KEEP_PENDING
    DEFAULT_SIGNING_ORDER: SigningOrder = SigningOrder.ANY
    AGREEMENT_NUMBER_PREFIX: str = "SSH"
    DEFAULT_NOTICE_PERIOD_DAYS: int = 30
    SECURITY_DEPOSIT_MONTHS: int = 2
    LOG_LEVEL: str = "INFO"
    ALLOWED_HOSTS_RAW: str = os.getenv("ALLOWED_HOSTS", "")

    @property
    def ALLOWED_HOSTS(self) -> List[str]:
        hosts = [h.strip() for h in self.ALLOWED_HOSTS_RAW.split(",") if h.strip()]
        valid = [h for h in hosts if h.startswith(("http://", "https://"))]
        if len(valid) != len(hosts):
            logger.warning(
                f"Ignoring ALLOWED_HOSTS entries without http(s) scheme: "
                f"{sorted(set(hosts) - set(valid))}"
            )
        return valid

    class Config:
        env_file = ".env"
        extra = "ignore"
        case_sensitive = False


settings = Settings()
