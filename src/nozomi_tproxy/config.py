"""Global configuration — XDG config file, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

ENV_PREFIX = "NOZOMI_TPROXY_"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "nozomi-tproxy"
    return Path.home() / ".config" / "nozomi-tproxy"


def _default_use_sudo() -> bool:
    return os.geteuid() != 0


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TproxyConfig:
    """Application-wide configuration."""

    port: int = 1081
    use_tproxy: bool = False
    prefix: str = "nozomi_tproxy"
    cgroup_root: Path = Path("/sys/fs/cgroup/net_cls")
    poll_interval: float = 0.1
    command_timeout: float = 10.0
    use_sudo: bool = field(default_factory=_default_use_sudo)
    log_level: str = "WARNING"
    config_dir: Path = field(default_factory=_default_config_dir)

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.yaml"

    @classmethod
    def load(cls, path: str | Path | None = None) -> TproxyConfig:
        """Load config from an optional YAML file, then environment variables."""
        config = cls()

        config_path = Path(path) if path else config.config_file
        if config_path.is_file():
            config.update_from_mapping(_read_yaml(config_path))

        env_port = os.environ.get(f"{ENV_PREFIX}PORT")
        if env_port:
            config.port = int(env_port)

        env_interval = os.environ.get(f"{ENV_PREFIX}POLL_INTERVAL")
        if env_interval:
            config.poll_interval = float(env_interval)

        env_root = os.environ.get(f"{ENV_PREFIX}CGROUP_ROOT")
        if env_root:
            config.cgroup_root = Path(env_root)

        env_sudo = os.environ.get(f"{ENV_PREFIX}SUDO")
        if env_sudo:
            config.use_sudo = _parse_bool(env_sudo)

        env_level = os.environ.get("LOG_LEVEL")
        if env_level:
            config.log_level = env_level.upper()

        config.validate()
        return config

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.command_timeout <= 0:
            raise ValueError(f"command_timeout must be positive, got {self.command_timeout}")
        if not self.prefix:
            raise ValueError("prefix must not be empty")

    def update_from_mapping(self, data: dict) -> None:
        known = {f.name: f for f in fields(self) if f.name != "config_dir"}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")

        for name, value in data.items():
            current = getattr(self, name)
            if isinstance(current, bool):
                value = _parse_bool(value) if isinstance(value, str) else bool(value)
            elif isinstance(current, Path):
                value = Path(value)
            elif isinstance(current, (int, float)):
                value = type(current)(value)
            else:
                value = str(value)
            setattr(self, name, value)


def _read_yaml(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must be a YAML mapping")
    return data
