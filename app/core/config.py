from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'paints_user'
    POSTGRES_PASSWORD: str = 'paints_pass'
    POSTGRES_DB: str = 'paints_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo, ej. sqlite:///./dev.db

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480  # Un turno de caja

    # Facturación
    TAX_RATE: Decimal = Decimal("0.12")  # IVA
    PAYMENT_TOLERANCE: Decimal = Decimal("0.01")  # Unidad monetaria mínima
    INVOICE_NUMBER_PADDING: int = 8
    CURRENCY: str = "GTQ"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("TAX_RATE")
    @classmethod
    def validate_tax_rate(cls, v):
        if v < 0 or v >= 1:
            raise ValueError("TAX_RATE debe expresarse como fracción entre 0 y 1 (ej. 0.12)")
        return v

    @field_validator("PAYMENT_TOLERANCE")
    @classmethod
    def validate_tolerance(cls, v):
        if v < 0:
            raise ValueError("PAYMENT_TOLERANCE no puede ser negativa")
        return v

settings = Settings()
