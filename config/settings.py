"""
SAM Evidence Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Paths (use SAM_ prefix)
    data_path: Path = Field(
        default=Path("./data"),
        alias="SAM_DATA_PATH",
        description="Directory holding evidence.db"
    )
    identity_directory_path: Path = Field(
        default=Path("./data/identities.json"),
        alias="SAM_IDENTITY_DIRECTORY",
        description="JSON export of the known-identity directory (read-only)"
    )

    # Server
    port: int = Field(default=8000, alias="SAM_PORT")
    host: str = Field(default="127.0.0.1", alias="SAM_HOST")

    # The user's own identity record. Participants matching it are always verified.
    # WARNING: must match an id in the identity directory export.
    my_identity_id: str = Field(
        default="",
        alias="SAM_MY_IDENTITY_ID",
        description="Identity id of the device owner ('me')"
    )

    # Recent meeting lookup
    recent_meeting_window_minutes: int = Field(
        default=120,
        alias="SAM_RECENT_MEETING_WINDOW",
        description="How far back a finished meeting still counts as recent"
    )
    default_meeting_minutes: int = Field(
        default=60,
        alias="SAM_DEFAULT_MEETING_MINUTES",
        description="Assumed meeting length when no end time was recorded"
    )

    @property
    def evidence_db_path(self) -> Path:
        """Get path to the evidence SQLite database."""
        return self.data_path / "evidence.db"


settings = Settings()
