from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    COMPS_DB_URL: str = "sqlite+aiosqlite:///./comps.db"

    # --- Minimal B2B Auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- BatchData property search (metered per call) ---
    BATCHDATA_API_KEY: str | None = None
    BATCHDATA_BASE_URL: str = "https://api.batchdata.com"
    BATCHDATA_SEARCH_PATH: str = "/api/v1/property/search"
    # Explicit flag; never guessed from the key itself
    BATCHDATA_SANDBOX: bool = False
    BATCHDATA_TAKE: int = 5  # options.take on every search, caps spend
    BATCHDATA_COST_PER_SEARCH: float = 0.46

    # --- Outbound HTTP resilience ---
    HTTP_TIMEOUT_S: float = 20.0
    HTTP_MAX_RETRIES: int = 2
    HTTP_BACKOFF_BASE_S: float = 0.5
    HTTP_RATE_LIMIT_RPS: float = 2.0
    HTTP_CIRCUIT_FAIL_THRESHOLD: int = 5
    HTTP_CIRCUIT_RESET_S: float = 60.0

    # --- Comparables policy ---
    COMPS_PRICE_FLOOR: int = 100_000  # non-arms-length guard
    COMPS_BEDROOM_TOLERANCE: int = 1  # |beds - target| > 1 excluded
    COMPS_BATHROOM_TOLERANCE: float = 2.0
    COMPS_RECENCY_YEARS: int = 3
    COMPS_SANDBOX_RELAX_RECENCY: bool = True
    COMPS_MAX_RESULTS: int = 20
    COMPS_EXCLUDE_DEFAULTED_PRICE: bool = True
    COMPS_DEFAULT_RADIUS_MILES: float = 0.5
    COMPS_SEARCH_PRICE_MIN: int = 100_000
    COMPS_SEARCH_PRICE_MAX: int = 20_000_000
    COMPS_INVENTORY_LOW_MAX: int = 3  # count < 3 => low
    COMPS_INVENTORY_MEDIUM_MAX: int = 6  # count < 6 => medium
    COMPS_REQUEST_TIMEOUT_S: float = 45.0

    # --- Comparables cache ---
    CACHE_TTL_DAYS: int = 30
    CACHE_STALE_DAYS: int = 7

    # --- Scheduler tuning ---
    SCHED_SWEEP_INTERVAL_MINUTES: int = 1440  # daily


settings = Settings()
