from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./bizledger.db"
    DATABASE_ECHO: bool = False

    # CORS origins, as a JSON list in the environment
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    LOG_LEVEL: str = "INFO"

    # Reporting
    DEFAULT_CURRENCY: str = "LKR"
    MONEY_DECIMAL_PLACES: int = 2
    # Upper bounds (days after the reference date) of the A/R aging buckets
    AGING_BUCKET_DAYS: tuple[int, int, int] = (15, 30, 60)


settings = Settings()
