from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings for the Microgrid Trading Service"""

    # Basic settings
    APP_NAME: str = "Microgrid Trading Service"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    PORT: int = 8000

    # JWT settings (tokens are issued by the auth service, verified here)
    JWT_SECRET_KEY: str = "your-super-secret-jwt-key-here-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 1440  # 24 hours

    # Redis settings
    REDIS_URL: str = "redis://redis:6379"
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0

    # Security settings
    ALLOWED_HOSTS: List[str] = ["*"]

    # Snapshot persistence
    SNAPSHOT_BACKEND: str = "file"  # "file" or "redis"
    SNAPSHOT_FILE: str = ".data/microgrid-state.json"
    SNAPSHOT_REDIS_KEY: str = "microgrid:snapshot"

    # Simulation settings
    SIMULATION_ENABLED: bool = True
    SETTLE_PROBABILITY: float = 0.3
    SIMULATION_SEED: Optional[int] = None

    # Market settings
    TRADE_LEDGER_LIMIT: int = 100
    DEFAULT_MARKET_PRICE: float = 5.5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()
