"""
Application settings loaded from environment variables.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── OAuth provider (Google) ──────────────────────────────────────────
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_revoke_url: str = "https://oauth2.googleapis.com/revoke"

    # ── Token lifecycle ──────────────────────────────────────────────────
    token_refresh_buffer_seconds: int = 300       # refresh this long before expiry
    default_token_lifetime_seconds: int = 3600    # when the provider omits expires_in
    missing_expiry_policy: str = "refresh"        # "refresh" | "never"

    # ── Credential store ─────────────────────────────────────────────────
    default_user_key: str = "default"
    credential_store_backend: str = "memory"      # "memory" | "sql"
    database_url: str = "sqlite+aiosqlite:///./credentials.db"
    token_encryption_key: str = ""                # Fernet key for secrets at rest (sql backend)

    # ── Outbound HTTP ────────────────────────────────────────────────────
    http_timeout_seconds: float = 30.0

    # ── Blocks ───────────────────────────────────────────────────────────
    airtable_base_url: str = "https://api.airtable.com/v0"
    default_spreadsheet_id: str = Field(default="", validation_alias="MY_SPREADSHEET_ID")
    default_sheet_name: str = "Sheet1"
    sheets_fetch_columns: List[str] = ["name", "email"]
    gmail_max_results: int = 10

    # ── Header names ─────────────────────────────────────────────────────
    access_token_header: str = "X-Access-Token"
    refresh_token_header: str = "X-Refresh-Token"
    token_expires_at_header: str = "X-Token-Expires-At"
    user_key_header: str = "X-User-Key"

    # ── Server ───────────────────────────────────────────────────────────
    port: int = 5000
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def refresh_on_missing_expiry(self) -> bool:
        return self.missing_expiry_policy.lower() != "never"


config = Settings()
