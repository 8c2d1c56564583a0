import os
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from util.errors import ConfigError
from util.log import log

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_SERVER_IP = "ws://localhost:8080"
DEFAULT_STUN_SERVERS = ["stun:stun.l.google.com:19302"]
DEFAULT_CHANNEL_LABEL = "chat"


@dataclass
class AppConfig:
    server_ip: str = DEFAULT_SERVER_IP
    stun_servers: List[str] = field(default_factory=lambda: list(DEFAULT_STUN_SERVERS))
    channel_label: str = DEFAULT_CHANNEL_LABEL


def save_config(path: str, config: AppConfig) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(config), f, indent=2)


def _from_dict(data: Any) -> AppConfig:
    if not isinstance(data, dict):
        raise ConfigError("config must be a JSON object")
    config = AppConfig()
    server_ip = data.get("server_ip", config.server_ip)
    if not isinstance(server_ip, str) or not server_ip:
        raise ConfigError("server_ip must be a non-empty string")
    stun_servers = data.get("stun_servers", config.stun_servers)
    if not isinstance(stun_servers, list) or not all(isinstance(s, str) for s in stun_servers):
        raise ConfigError("stun_servers must be a list of strings")
    channel_label = data.get("channel_label", config.channel_label)
    if not isinstance(channel_label, str) or not channel_label:
        raise ConfigError("channel_label must be a non-empty string")
    return AppConfig(server_ip=server_ip, stun_servers=list(stun_servers), channel_label=channel_label)


def load_or_create_config(path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Read the config file, writing one with defaults on first run."""
    if not os.path.exists(path):
        config = AppConfig()
        try:
            save_config(path, config)
        except OSError as e:
            raise ConfigError(f"cannot create {path}: {e}") from e
        log("config_created", path=path)
        return config
    try:
        with open(path, "r", encoding="utf-8") as f:
            data: Dict[str, Any] = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    return _from_dict(data)
