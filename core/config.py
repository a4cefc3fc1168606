"""Runtime configuration for the sync pipelines.

Credentials come from a SecretProvider (environment / .env file, or a JSON
bundle on disk). They are read once into a SyncSettings object which is then
passed to every connector, store and pipeline. Nothing below this module reads
the environment directly.

Usage:
    settings = load_settings()               # env + .env
    settings = load_settings(JsonFileSecretProvider("secrets.json"))
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ConfigDict, field_validator


# =============================================================================
# Defaults
# =============================================================================

REPO_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_FIELD_BASE_URL = "https://api.infraspeak.com/v3"
DEFAULT_APP_NAME = "OdooSpeak"

# Ledger chart / location ids used by the material-request and labour postings
DEFAULT_JOURNAL_ID = 16               # Inventory Valuation
DEFAULT_INVENTORIES_ACCOUNT_ID = 482  # 5013100 Inventories
DEFAULT_SALARIES_ACCOUNT_ID = 182     # labour cost
DEFAULT_SCRAP_LOCATION_ID = 16        # Virtual Locations/Scrap

DEFAULT_CATEGORY_CODE_FIELD = "x_studio_char_field_49j_1ibhepvhj"

REQUIRED_SECRETS = (
    "ODOO_DB",
    "ODOO_LOGIN",
    "ODOO_PASSWORD",
    "ODOO_API_KEY",
    "INFRASPEAK_API_KEY",
    "INFRASPEAK_EMAIL",
)


class ConfigurationError(ValueError):
    """Missing or malformed configuration."""
    pass


# =============================================================================
# Secret Providers
# =============================================================================

class SecretProvider(ABC):
    """Source of the structured credential bundle."""

    @abstractmethod
    def get_secret_bundle(self) -> Dict[str, str]:
        """Return the credential bundle as a flat dict of strings."""
        pass


class EnvSecretProvider(SecretProvider):
    """Reads credentials from the process environment (after loading .env)."""

    def __init__(self, env_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        self.env_path = env_path or (REPO_ROOT / ".env")
        self._environ = environ

    def get_secret_bundle(self) -> Dict[str, str]:
        if self._environ is not None:
            return dict(self._environ)
        if self.env_path.exists():
            load_dotenv(self.env_path)
        return dict(os.environ)


class JsonFileSecretProvider(SecretProvider):
    """Reads credentials from a JSON object stored on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def get_secret_bundle(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read secret bundle {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Secret bundle {self.path} must be a JSON object")
        return {k: str(v) for k, v in data.items() if v is not None}


# =============================================================================
# Settings
# =============================================================================

class SyncSettings(BaseModel):
    """All configuration needed by one process.

    Built once by load_settings() and injected everywhere else.
    """
    model_config = ConfigDict(frozen=True)

    # Ledger (Odoo)
    ledger_base_url: str = Field(..., description="Odoo base URL, e.g. https://acme.odoo.com")
    ledger_db: str
    ledger_login: str
    ledger_password: str = Field(..., repr=False)
    ledger_api_key: str = Field(..., repr=False)

    # Field system (Infraspeak)
    field_api_key: str = Field(..., repr=False)
    field_email: str
    field_base_url: str = DEFAULT_FIELD_BASE_URL
    app_name: str = DEFAULT_APP_NAME

    # Ledger chart of accounts / locations
    journal_id: int = DEFAULT_JOURNAL_ID
    inventories_account_id: int = DEFAULT_INVENTORIES_ACCOUNT_ID
    salaries_account_id: int = DEFAULT_SALARIES_ACCOUNT_ID
    scrap_location_id: int = DEFAULT_SCRAP_LOCATION_ID
    category_code_field: str = DEFAULT_CATEGORY_CODE_FIELD

    # Paging
    request_page_size: int = 300
    ledger_page_size: int = 100
    ledger_product_page_size: int = 500
    field_material_page_size: int = 1000

    # Runtime behaviour
    state_db_path: str = str(REPO_ROOT / "sync_state.db")
    notify_webhook_url: Optional[str] = None
    notify_subject: str = "Odoo Integration Error"
    process_all_items: bool = True
    strict_warehouse_matching: bool = False
    http_timeout_seconds: int = 30

    @field_validator("ledger_base_url", "field_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def from_bundle(cls, bundle: Mapping[str, Any]) -> "SyncSettings":
        """Build settings from a flat secret bundle (env var names as keys)."""
        missing = [k for k in REQUIRED_SECRETS if not bundle.get(k)]
        base_url = bundle.get("ODOO_URL")
        if not base_url:
            account = bundle.get("ODOO_ACCOUNT")
            if not account:
                missing.append("ODOO_URL or ODOO_ACCOUNT")
            else:
                base_url = f"https://{account}.odoo.com"
        if missing:
            raise ConfigurationError(f"Missing configuration values: {', '.join(missing)}")

        values: Dict[str, Any] = {
            "ledger_base_url": base_url,
            "ledger_db": bundle["ODOO_DB"],
            "ledger_login": bundle["ODOO_LOGIN"],
            "ledger_password": bundle["ODOO_PASSWORD"],
            "ledger_api_key": bundle["ODOO_API_KEY"],
            "field_api_key": bundle["INFRASPEAK_API_KEY"],
            "field_email": bundle["INFRASPEAK_EMAIL"],
        }

        optional = {
            "INFRASPEAK_URL": "field_base_url",
            "SYNC_APP_NAME": "app_name",
            "LEDGER_JOURNAL_ID": "journal_id",
            "LEDGER_INVENTORIES_ACCOUNT_ID": "inventories_account_id",
            "LEDGER_SALARIES_ACCOUNT_ID": "salaries_account_id",
            "LEDGER_SCRAP_LOCATION_ID": "scrap_location_id",
            "LEDGER_CATEGORY_CODE_FIELD": "category_code_field",
            "SYNC_STATE_DB": "state_db_path",
            "SYNC_NOTIFY_WEBHOOK_URL": "notify_webhook_url",
            "SYNC_NOTIFY_SUBJECT": "notify_subject",
            "SYNC_PROCESS_ALL_ITEMS": "process_all_items",
            "SYNC_STRICT_WAREHOUSE_MATCHING": "strict_warehouse_matching",
            "SYNC_HTTP_TIMEOUT_SECONDS": "http_timeout_seconds",
        }
        for env_name, field_name in optional.items():
            raw = bundle.get(env_name)
            if raw not in (None, ""):
                values[field_name] = raw

        return cls(**values)


def load_settings(provider: Optional[SecretProvider] = None) -> SyncSettings:
    """Read the credential bundle once and build SyncSettings.

    Raises:
        ConfigurationError: Required values are missing
    """
    provider = provider or EnvSecretProvider()
    return SyncSettings.from_bundle(provider.get_secret_bundle())
