from typing import Dict, List, Optional
from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # App Settings
    APP_NAME: str = "CundinaIndexer"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",  # Frontend development
        "http://localhost:5173",  # Vite dev server
    ]

    # Database Settings
    DATABASE_URL: Optional[str] = None  # Overrides POSTGRES_* when set
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "cundina_indexer"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_MIN_POOL_SIZE: int = 5
    POSTGRES_MAX_POOL_SIZE: int = 20
    DB_LOGGING_ENABLED: bool = False
    DB_AUTO_CREATE_TABLES: bool = True

    # Redis Settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 10

    # Chain Settings
    RPC_URL: str = "https://ethereum-sepolia-rpc.publicnode.com"
    CHAIN_ID: int = 11155111  # Sepolia
    REGISTRY_ADDRESS: str = "0xd13e3b5b61dEb4f4D1cfdc26988875FA9022AE5E"
    STABLECOIN_DECIMALS: int = 6

    # Indexer Settings
    INDEXER_ENABLED: bool = False
    INDEXER_START_BLOCK: int = 0
    INDEXER_BATCH_SIZE: int = 2000
    INDEXER_MIN_BATCH_SIZE: int = 10
    INDEXER_POLL_INTERVAL_SECONDS: float = 12.0
    INDEXER_STALL_THRESHOLD_SECONDS: int = 300
    INDEXER_STRICT_REFERENCES: bool = False

    # Ranking Settings
    TREND_UNCHANGED_POLICY: str = "reset_to_same"  # or "carry_forward"
    QUERY_DEFAULT_PAGE_SIZE: int = 100
    QUERY_MAX_PAGE_SIZE: int = 1000

    # Client Settings
    QUERY_API_URL: str = "http://localhost:8080"
    HTTP_DEFAULT_TIMEOUT: float = 10.0
    HTTP_QUERY_TIMEOUT: float = 15.0
    HTTP_RPC_TIMEOUT: float = 10.0
    HTTP_MAX_CONNECTIONS: int = 20
    HTTP_MAX_KEEPALIVE_CONNECTIONS: int = 10
    QUERY_COOLDOWN_BASE_SECONDS: float = 60.0
    QUERY_COOLDOWN_MAX_SECONDS: float = 300.0
    INDEXING_LAG_DELAY_SECONDS: float = 8.0
    EVENT_POLL_INTERVAL_SECONDS: float = 15.0
    AUTO_REFRESH_INTERVAL_SECONDS: float = 30.0
    AUTO_REFRESH_MAX_INTERVAL_SECONDS: float = 300.0
    BLOCK_NUMBERING_CACHE_TTL_SECONDS: float = 300.0
    RANKING_CACHE_TTL_SECONDS: float = 60.0

    # Rate Limiting (requests per minute per client IP)
    RATE_LIMIT_ENDPOINTS: Dict[str, int] = {
        "/api/v1/query": 120,
        "/api/v1/rankings": 60,
    }
    RATE_LIMIT_DEFAULT: int = 120

    class Config:
        env_file = ".env"
        case_sensitive = True

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
