from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "FinTrack Command Center API"
    api_prefix: str = "/api/v1"
    debug: bool = False
    log_level: str = "INFO"
    auto_create_schema: bool = True
    seed_demo_data: bool = False

    database_url: str = (
        "sqlite+pysqlite:///" + str(Path(__file__).resolve().parents[2] / "ledger.db")
    )
    cors_origins: str = "http://localhost:3020,http://localhost:3000"

    dna_config_path: str = str(Path(__file__).resolve().parents[2] / "data" / "financial_dna.json")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()
