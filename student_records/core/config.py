from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaMode(str, Enum):
    """
    Policy controlling what happens to the database schema when the
    session factory is opened and closed.
    """
    RECREATE = "recreate"                        # drop + create on open, drop on close
    RECREATE_PERSISTENT = "recreate-persistent"  # drop + create on open, keep on close
    VALIDATE_ONLY = "validate-only"              # fail fast on missing tables/columns
    MIGRATE = "migrate"                          # additive changes only
    NONE = "none"


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be configured via .env file or environment variables.
    """

    # =============================================================================
    # APPLICATION
    # =============================================================================
    PROJECT_NAME: str = "Student Records API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # =============================================================================
    # POSTGRESQL DATABASE - Individual components
    # =============================================================================
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "student_db"

    # Database URL - set directly or built from the POSTGRES_* components
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    # Credentials that override whatever is embedded in DATABASE_URL
    DB_USERNAME: Optional[str] = None
    DB_PASSWORD: Optional[str] = None

    # =============================================================================
    # DATABASE BEHAVIOUR
    # =============================================================================
    DB_SCHEMA_MODE: SchemaMode = SchemaMode.NONE
    DB_ECHO_SQL: bool = False
    DB_CONNECT_TIMEOUT: int = 10

    # =============================================================================
    # LOGGING
    # =============================================================================
    LOG_LEVEL: str = "INFO"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def build_database_url(cls, v: Optional[str], info) -> str:
        """
        Build DATABASE_URL from components if not provided.

        Priority:
        1. Use DATABASE_URL if explicitly set in .env
        2. Build from POSTGRES_* components
        """
        if isinstance(v, str) and v:
            return v

        # Build from components
        user = info.data.get("POSTGRES_USER")
        password = info.data.get("POSTGRES_PASSWORD")
        host = info.data.get("POSTGRES_HOST")
        port = info.data.get("POSTGRES_PORT")
        db = info.data.get("POSTGRES_DB")

        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


class DatabaseConfig(BaseModel):
    """
    Connection configuration consumed by the session factory.

    ``username``/``password`` take precedence over credentials embedded in
    ``url``. ``schema_mode`` accepts either a SchemaMode member or its value
    (``"recreate"``, ``"validate-only"``, ...).
    """
    url: str
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    schema_mode: SchemaMode = SchemaMode.NONE
    echo: bool = False
    connect_timeout: int = Field(default=10, gt=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DatabaseConfig":
        return cls(
            url=settings.DATABASE_URL,
            username=settings.DB_USERNAME,
            password=settings.DB_PASSWORD,
            schema_mode=settings.DB_SCHEMA_MODE,
            echo=settings.DB_ECHO_SQL,
            connect_timeout=settings.DB_CONNECT_TIMEOUT,
        )

    def safe_dict(self) -> Dict[str, Any]:
        """Config as a dict with the password masked (for logging)."""
        data = self.model_dump()
        if self.password is not None:
            data["password"] = "***"
        return data


# Create global settings instance
settings = Settings()


# Helper function to display current config (for debugging)
def print_config(current: Optional[Settings] = None):
    """Print current configuration (hide sensitive data)."""
    current = current or settings
    password = current.DB_PASSWORD or current.POSTGRES_PASSWORD
    url = current.DATABASE_URL
    if password:
        url = url.replace(password, "***")
    print("=" * 80)
    print("📋 CURRENT CONFIGURATION")
    print("=" * 80)
    print(f"Project Name: {current.PROJECT_NAME}")
    print(f"Version: {current.APP_VERSION}")
    print(f"Debug Mode: {current.DEBUG}")
    print(f"API Prefix: {current.API_V1_PREFIX}")
    print("-" * 80)
    print(f"Database URL: {url}")
    print(f"Database User: {current.DB_USERNAME or '(from URL)'}")
    print(f"Database Password: {'*' * len(password or '')}")
    print(f"Schema Mode: {current.DB_SCHEMA_MODE.value}")
    print(f"Echo SQL: {current.DB_ECHO_SQL}")
    print(f"Connect Timeout: {current.DB_CONNECT_TIMEOUT}s")
    print("=" * 80)


if __name__ == "__main__":
    # Test config loading
    print_config()
