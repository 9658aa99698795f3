import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    env: Literal["dev", "prod"] = "dev"
    log_level: str = "INFO"

    google_maps_api_key: str = ""
    komoot_api_key: str = ""
    osrm_base_urls: Annotated[list[str], NoDecode] = Field(default_factory=list)
    osrm_user_agent: str = "trip-route-engine/0.1"

    redis_url: str = ""
    routes_cache_ttl_sec: int = 900

    route_request_timeout_sec: int = 8
    route_max_concurrency: int = Field(default=3, ge=1)

    @field_validator("osrm_base_urls", mode="before")
    @classmethod
    def parse_osrm_base_urls(cls, value: object) -> list[str]:
        def _normalize_url(url_value: object) -> str:
            # Paths are appended as "/route/v1/..."
            return str(url_value).strip().rstrip("/")

        items: list[object] = []
        if isinstance(value, str):
            if not value.strip():
                return []
            if value.strip().startswith("["):
                try:
                    parsed = json.loads(value)
                    if isinstance(parsed, list):
                        items = parsed
                except json.JSONDecodeError:
                    items = value.split(",")
            else:
                items = value.split(",")
        elif isinstance(value, list):
            items = value

        urls = [_normalize_url(item) for item in items if _normalize_url(item)]
        # Preserve order but drop duplicates.
        return list(dict.fromkeys(urls))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
