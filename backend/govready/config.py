from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    allowed_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Onboarding / company backend
    backend_url: str = "http://localhost:3001"
    backend_state_timeout_seconds: float = 5.0
    backend_submit_timeout_seconds: float = 10.0  # mutations get longer than reads

    # Drafts
    draft_store: str = "redis"  # "redis" | "memory"
    draft_debounce_seconds: float = 0.3
    draft_ttl_seconds: int = 7 * 24 * 3600

    # Auth / JWT (tokens are issued upstream, we only verify)
    secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
