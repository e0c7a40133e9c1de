"""
Application configuration loaded from environment variables / .env file.

The relay credentials may also live in a JSON file (``CONFIG_FILE``, default
``config.json``) with the keys ``device_id``, ``local_key``, ``local_ip`` and
``version``.  Non-empty environment values win over the file.
"""

import json
import logging
from pathlib import Path

from pydantic_settings import BaseSettings

from app.relay.errors import RelayConfigError
from app.relay.models import RelayIdentity

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Relay identity
    config_file: str = "config.json"
    device_id: str = ""
    local_key: str = ""
    local_ip: str = ""
    protocol_version: str = ""
    relay_dps: int = 1

    # Relay behaviour
    door_unlock_duration: int = 3000  # ms
    reconnect_delay: float = 5.0
    command_timeout: float = 10.0
    heartbeat_interval: float = 10.0
    identity_settle_delay: float = 1.0

    # API server
    api_token: str = ""
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()


def _read_config_file(path: Path) -> dict:
    try:
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        raise RelayConfigError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise RelayConfigError(f"{path} must contain a JSON object")
    return data


def load_identity(cfg: Settings | None = None) -> RelayIdentity:
    """
    Build the relay identity from the config file and environment.

    Raises ``RelayConfigError`` if device id, local key or address is missing.
    """
    cfg = cfg or settings
    path = Path(cfg.config_file)
    file_data = _read_config_file(path)
    if file_data:
        logger.info("Relay configuration loaded from %s", path)

    identity = RelayIdentity(
        device_id=cfg.device_id or str(file_data.get("device_id", "")),
        local_key=cfg.local_key or str(file_data.get("local_key", "")),
        address=cfg.local_ip or str(file_data.get("local_ip", "")),
        version=cfg.protocol_version or str(file_data.get("version") or "3.5"),
        dps_index=cfg.relay_dps,
    )
    if not identity.is_complete():
        raise RelayConfigError(
            f"Relay credentials missing: set device_id, local_key and local_ip "
            f"in {path} or the environment"
        )
    return identity
