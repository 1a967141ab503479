"""Summary: Application configuration for DriveLink.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for storage, realtime timing, and the API.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    listings_path: str
    typing_timeout_seconds: float
    heartbeat_timeout_seconds: float
    send_delay_seconds: float
    send_success_rate: float
    api_host: str
    api_port: int
    api_key: str
    default_user_id: str
    default_user_name: str
    default_user_email: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("DRIVELINK_DB_PATH", defaults["db_path"]),
            listings_path=os.getenv("DRIVELINK_LISTINGS_PATH", defaults["listings_path"]),
            typing_timeout_seconds=float(
                os.getenv("DRIVELINK_TYPING_TIMEOUT_SECONDS", defaults["typing_timeout_seconds"])
            ),
            heartbeat_timeout_seconds=float(
                os.getenv(
                    "DRIVELINK_HEARTBEAT_TIMEOUT_SECONDS", defaults["heartbeat_timeout_seconds"]
                )
            ),
            send_delay_seconds=float(
                os.getenv("DRIVELINK_SEND_DELAY_SECONDS", defaults["send_delay_seconds"])
            ),
            send_success_rate=float(
                os.getenv("DRIVELINK_SEND_SUCCESS_RATE", defaults["send_success_rate"])
            ),
            api_host=os.getenv("DRIVELINK_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("DRIVELINK_API_PORT", defaults["api_port"])),
            api_key=os.getenv("DRIVELINK_API_KEY", defaults["api_key"]),
            default_user_id=os.getenv("DRIVELINK_DEFAULT_USER_ID", defaults["default_user_id"]),
            default_user_name=os.getenv(
                "DRIVELINK_DEFAULT_USER_NAME", defaults["default_user_name"]
            ),
            default_user_email=os.getenv(
                "DRIVELINK_DEFAULT_USER_EMAIL", defaults["default_user_email"]
            ),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())
