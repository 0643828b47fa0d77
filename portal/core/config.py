from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class FeatureFlags:
    """Feature switches read by the transition guard and state machine."""

    revision_and_authorisation: bool = True
    not_authorised_reason: bool = True
    withdraw_modification: bool = True

    def is_enabled(self, name: Optional[str]) -> bool:
        """An outcome with no flag is always enabled."""
        if name is None:
            return True
        if name not in {f.name for f in fields(self)}:
            raise KeyError(f"Unknown feature flag: {name}")
        return getattr(self, name)


class Settings(BaseSettings):
    # App
    app_name: str = "Submission Portal"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./portal.db"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    file_logging: bool = False

    # Role catalog file; the built-in tables are used when unset
    catalog_path: Optional[str] = None

    # Feature flags
    revision_and_authorisation: bool = True
    not_authorised_reason: bool = True
    withdraw_modification: bool = True

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )

    def feature_flags(self) -> FeatureFlags:
        return FeatureFlags(
            revision_and_authorisation=self.revision_and_authorisation,
            not_authorised_reason=self.not_authorised_reason,
            withdraw_modification=self.withdraw_modification,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
