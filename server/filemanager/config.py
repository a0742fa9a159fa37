"""File Manager Server - Configuration"""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # JSON stores (users.json, branches.json, companies.json, permissions.json, ...)
    data_dir: str = "data"
    # Root of the managed folder tree
    uploads_dir: str = "uploads"

    # Auth
    jwt_secret: str = "change_this_secret"
    jwt_expires_days: int = 7
    cookie_secure: bool = True

    # Seeded on first start when the user store is empty
    default_admin_username: str = "admin"
    default_admin_password: str = "admin"

    # Upload size cap (megabytes)
    max_upload_mb: int = 500

    # CORS origins (comma-separated URLs)
    cors_origins: str = "http://localhost:3000,http://localhost:3001"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    def get_cors_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if not self.cors_origins:
            return ["http://localhost:3000"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def data_file(self, name: str) -> str:
        """Absolute-or-relative path of a JSON store inside data_dir."""
        return os.path.join(self.data_dir, name)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
