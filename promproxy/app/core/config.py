from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional
import os

# Environment names that do not follow the PROM_PROXY_<FIELD> pattern
ENV_ALIASES = {
    "prometheus_url": ("PROM_PROXY_SERVER_URL", str),
    "port": ("PROM_PROXY_SERVER_PORT", int),
    "secret_file_path": ("PROM_PROXY_SECRET_FILE", str),
    "log_level": ("LOG_LEVEL", str),
}


class Settings(BaseSettings):
    app_name: str = "Prometheus CPU Usage Proxy"
    host: str = "0.0.0.0"
    port: int = 48080
    log_level: str = "INFO"
    prometheus_url: str = "http://192.168.87.108:9090"
    query_timeout_sec: float = 10.0

    # Bearer token gate
    secure_api_with_key: bool = False
    secure_api_key: Optional[str] = None
    secret_file_path: str = "api_key.secret"

    class Config:
        env_file = ".env"
        env_prefix = "PROM_PROXY_"
        env_ignore_empty = True
        case_sensitive = False

    @field_validator("secure_api_with_key", mode="before")
    @classmethod
    def _literal_true(cls, v):
        # Only the literal "True" turns the gate on
        if isinstance(v, str):
            return v == "True"
        return v

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for field_name, (env_name, cast) in ENV_ALIASES.items():
            if field_name in kwargs:
                continue
            value = os.getenv(env_name)
            if value:
                object.__setattr__(self, field_name, cast(value))


settings = Settings()
