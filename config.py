import os
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    database_url: str = Field(default="mongodb://localhost:27017", alias="DATABASE_URL")
    database_name: str = Field(default="coupon_catalog", alias="DATABASE_NAME")
    jwt_secret: str = Field(default="change-me", alias="JWT_SECRET")
    jwt_expires_minutes: int = Field(default=60 * 24 * 30, gt=0, alias="JWT_EXPIRES_MINUTES")
    env: str = Field(default="development", alias="APP_ENV")
    upload_dir: Path = Field(default=Path("uploads"), alias="UPLOAD_DIR")
    uploads_url: str = Field(default="/uploads", alias="UPLOADS_URL")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, gt=0, alias="MAX_UPLOAD_BYTES")
    max_product_images: int = Field(default=5, gt=0, alias="MAX_PRODUCT_IMAGES")
    admin_username: Optional[str] = Field(default=None, alias="ADMIN_USERNAME")
    admin_password: Optional[str] = Field(default=None, alias="ADMIN_PASSWORD")
    admin_email: Optional[str] = Field(default=None, alias="ADMIN_EMAIL")
    frontend_url: str = Field(default="http://localhost:5173", alias="FRONTEND_URL")
    reset_token_minutes: int = Field(default=10, gt=0, alias="RESET_TOKEN_MINUTES")
    allowed_origins: str = Field(default="http://localhost:5173", alias="ALLOWED_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    store_delete_policy: Literal["keep", "restrict", "cascade"] = Field(
        default="keep", alias="STORE_DELETE_POLICY"
    )

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


def _load_dotenv():
    # Load from repo root if present, otherwise rely on environment variables.
    root_env = Path(__file__).resolve().parent / ".env"
    if root_env.exists():
        load_dotenv(root_env)
    else:
        load_dotenv()


def load_settings() -> Settings:
    """Build the process-wide settings object. Call once at startup."""
    _load_dotenv()
    try:
        return Settings(**os.environ)
    except ValidationError as exc:
        invalid = [str(e["loc"][0]) for e in exc.errors()]
        detail = f"Invalid environment variables: {', '.join(invalid)}"
        raise RuntimeError(detail) from exc
