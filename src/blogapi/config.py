from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite:///blog.db")
    api_title: str = Field("Blog API")
    api_prefix: str = Field("/api/v1")
    log_level: str = Field("INFO")

    jwt_secret: str = Field("secret")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60 * 24 * 7)

    password_min_length: int = Field(6)
    password_hash_iterations: int = Field(260_000)
    auth_rate_limit: str = Field("5/minute")

    upload_dir: str = Field("storage")
    storage_url: str = Field("/storage")
    max_banner_size_kb: int = Field(2048)
    allowed_banner_types: List[str] = Field(
        default_factory=lambda: [
            "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"
        ]
    )

    # Drafts are visible through the public category listing unless disabled.
    category_posts_include_unpublished: bool = Field(True)


settings = Settings()
