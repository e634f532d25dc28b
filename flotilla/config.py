"""Daemon and client configuration loading."""

import logging
import os
from dataclasses import asdict, dataclass, field, fields

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PORT = 13754


def flotilla_home() -> str:
    """State directory: $FLOTILLA_HOME or ~/.flotilla."""
    return _expand_path(os.environ.get("FLOTILLA_HOME", "~/.flotilla"))


def default_config_path() -> str:
    return os.path.join(flotilla_home(), "config.yaml")


@dataclass
class DaemonConfig:
    """Settings used by the daemon process."""

    port: int = DEFAULT_PORT
    state_dir: str = ""
    readiness_interval: float = 4.0
    liveness_interval: float = 5.0
    stop_timeout: float = 10.0
    net_probe_timeout: float = 1.0

    def __post_init__(self):
        if not self.state_dir:
            self.state_dir = flotilla_home()
        self.state_dir = _expand_path(self.state_dir)

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.state_dir, "logs")

    @property
    def daemon_log_file(self) -> str:
        return os.path.join(self.state_dir, "daemon.log")

    @property
    def daemon_output_file(self) -> str:
        """stdout/stderr of a daemon started in the background."""
        return os.path.join(self.state_dir, "daemon.out")


@dataclass
class ClientConfig:
    """Settings used by CLI commands."""

    default_dir: str | None = None
    daemon_start_timeout: float = 10.0


@dataclass
class FlotillaConfig:
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    client: ClientConfig = field(default_factory=ClientConfig)

    @property
    def daemon_url(self) -> str:
        return f"http://127.0.0.1:{self.daemon.port}"

    @classmethod
    def from_dict(cls, d: dict) -> "FlotillaConfig":
        """Build a config from a parsed YAML mapping, rejecting unknown keys."""
        d = d or {}
        unknown = set(d) - {"daemon", "client"}
        if unknown:
            raise ValueError(f"Unknown config section(s): {', '.join(sorted(unknown))}")
        return cls(
            daemon=_build_section(DaemonConfig, d.get("daemon") or {}, "daemon"),
            client=_build_section(ClientConfig, d.get("client") or {}, "client"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def _build_section(section_cls, values: dict, section: str):
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown key(s) in '{section}' section: {', '.join(sorted(unknown))}")
    return section_cls(**values)


def load_config(config_path: str | None = None) -> FlotillaConfig:
    """Load configuration from YAML file. A missing file yields defaults."""
    config_path = config_path or default_config_path()
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError:
        return FlotillaConfig()
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML config '{config_path}': {e}") from e
    return FlotillaConfig.from_dict(raw)


def save_config(config: FlotillaConfig, config_path: str | None = None) -> str:
    config_path = config_path or default_config_path()
    os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)
    with open(config_path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
    logger.debug(f"Wrote config to {config_path}")
    return config_path


def get_value(config: FlotillaConfig, key: str):
    """Read a dotted key such as 'daemon.port'."""
    section, name = _split_key(key)
    return getattr(getattr(config, section), name)


def set_value(config: FlotillaConfig, key: str, raw_value: str) -> FlotillaConfig:
    """Return a new config with a dotted key replaced.

    The raw string is parsed as YAML so numbers and booleans keep their type.
    """
    section, name = _split_key(key)
    d = config.to_dict()
    d[section][name] = yaml.safe_load(raw_value) if raw_value != "" else None
    return FlotillaConfig.from_dict(d)


def _split_key(key: str) -> tuple[str, str]:
    section, _, name = key.partition(".")
    if section not in ("daemon", "client") or not name:
        raise ValueError(f"Invalid config key '{key}'. Expected 'daemon.<name>' or 'client.<name>'.")
    section_cls = DaemonConfig if section == "daemon" else ClientConfig
    if name not in {f.name for f in fields(section_cls)}:
        raise ValueError(f"Unknown config key '{key}'")
    return section, name


def _expand_path(path: str) -> str:
    """Expand user home directory and environment variables in path."""
    return os.path.expanduser(os.path.expandvars(path))
