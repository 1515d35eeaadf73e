"""
Runtime configuration.

Values come from the environment (a local .env file is honoured) and are
read once per process through get_settings().
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    mongo_uri: str = "mongodb://localhost:27017"
    database_name: str = "aquarium_shop"
    jwt_secret: str = "secret"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 30
    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    port: int = 5000
    upload_dir: str = "uploads"
    environment: str = "development"
    log_level: Optional[str] = None
    cors_origins: List[str] = ["*"]

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}
        for field in cls.model_fields:
            raw = os.getenv(field.upper())
            if raw is None or raw == "":
                continue
            if field == "cors_origins":
                values[field] = [o.strip() for o in raw.split(",") if o.strip()]
            else:
                values[field] = raw
        # MONGODB_URI / DATABASE_URL are accepted as aliases
        if "mongo_uri" not in values:
            alias = os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL")
            if alias:
                values["mongo_uri"] = alias
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
