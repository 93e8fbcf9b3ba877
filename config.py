import logging
import os

from pydantic import BaseModel


class Settings(BaseModel):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./expenses.db")

    # live exchange rates only when USE_EXTERNAL=1, mocked otherwise
    USE_EXTERNAL: bool = os.getenv("USE_EXTERNAL") == "1"
    EXCHANGE_RATE_API: str = os.getenv("EXCHANGE_RATE_API", "https://api.exchangerate-api.com/v4/latest")
    EXCHANGE_RATE_TIMEOUT: float = float(os.getenv("EXCHANGE_RATE_TIMEOUT", "10"))

    APPROVAL_DUE_DAYS: int = int(os.getenv("APPROVAL_DUE_DAYS", "7"))
    DEFAULT_PERCENTAGE_THRESHOLD: int = int(os.getenv("DEFAULT_PERCENTAGE_THRESHOLD", "60"))
    # raise ConfigurationGapError instead of auto-approving when escalation finds nobody
    STRICT_ESCALATION: bool = os.getenv("STRICT_ESCALATION", "").lower() in {"1", "true", "yes"}

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level=None):
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
