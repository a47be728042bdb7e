import ipaddress
import os
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from netforge.network import AddressScope


CONFIG_NAMES = ("netforge.yaml", "netforge.yml")
DEFAULT_PORT = 4444
DEFAULT_UNIX_SOCKET = "netforge.sock"
NETWORK_KINDS = ("bridge", "overlay")
VARIABLE_PATTERN = re.compile(r"\$\{(\w+)\}")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    """Immutable daemon settings, built once at startup."""

    bridge: AddressScope
    overlay: AddressScope
    debug: bool = False
    port: int = DEFAULT_PORT
    unix_socket: str = DEFAULT_UNIX_SOCKET

    def scope_for(self, kind: str) -> AddressScope:
        if kind not in NETWORK_KINDS:
            raise ValueError(f"Unknown network kind: {kind}")
        return getattr(self, kind)


def resolve_config_path(path: str | None = None) -> Path:
    """Resolve an explicit config path, or search the home and current directories."""
    if path:
        candidate = Path(path).expanduser()
        if not candidate.is_file():
            raise ConfigError(f"Config file '{path}' not found")
        return candidate.resolve()

    for directory in (Path.home(), Path.cwd()):
        for name in CONFIG_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate.resolve()

    raise ConfigError(
        "No config file found. Pass --config or run 'netforge init netforge.yaml'."
    )


def load_config(path: Path) -> dict:
    """Load and parse a YAML config file."""
    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e.strerror or e}") from e
    if not isinstance(config, dict):
        raise ConfigError(f"Invalid config file: {path}")
    return config


def _variables(config: dict) -> dict:
    """Return the ``settings:`` table as string variables."""
    table = config.get("settings") or {}
    if not isinstance(table, dict):
        raise ConfigError("Config field 'settings' must be a mapping of variable names")
    return {str(k): str(v) for k, v in table.items()}


def interpolate_variables(config: dict) -> dict:
    """Expand ${NAME} references in string values.

    Unknown names are kept verbatim so the CIDR check reports them.
    """
    variables = _variables(config)

    def _lookup(m: re.Match) -> str:
        name = m.group(1)
        return variables.get(name, os.environ.get(name, m.group(0)))

    def _expand(value):
        if isinstance(value, str):
            return VARIABLE_PATTERN.sub(_lookup, value)
        if isinstance(value, dict):
            return {k: _expand(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand(v) for v in value]
        return value

    return _expand(config)


def _parse_cidr(value, what: str) -> ipaddress.IPv4Network:
    text = str(value).strip()
    if "/" not in text:
        raise ConfigError(f"Invalid {what} '{value}': missing prefix length (e.g. {text}/24)")
    try:
        return ipaddress.IPv4Network(text, strict=False)
    except ValueError as e:
        raise ConfigError(f"Invalid {what} '{value}': {e}") from e


def parse_scope(kind: str, section: dict | None) -> AddressScope:
    """Validate one network kind's section into an AddressScope."""
    if not isinstance(section, dict):
        raise ConfigError(f"Config missing required section: '{kind}'")
    if "scope" not in section:
        raise ConfigError(f"Section '{kind}' missing required field: 'scope'")
    if "subnet_prefix" not in section:
        raise ConfigError(f"Section '{kind}' missing required field: 'subnet_prefix'")

    cidr = _parse_cidr(section["scope"], f"{kind} scope")

    raw = section["subnet_prefix"]
    try:
        if isinstance(raw, bool):
            raise TypeError(raw)
        prefix = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid {kind} subnet_prefix '{raw}': must be an integer")
    if not cidr.prefixlen <= prefix <= 32:
        raise ConfigError(
            f"Invalid {kind} subnet_prefix {prefix}: must be between "
            f"{cidr.prefixlen} and 32 for scope {cidr}"
        )

    blacklist = section.get("blacklist") or []
    if not isinstance(blacklist, list):
        raise ConfigError(f"Section '{kind}' field 'blacklist' must be a list")

    return AddressScope(
        cidr=cidr,
        subnet_prefix=prefix,
        blacklist=tuple(_parse_cidr(b, f"{kind} blacklist entry") for b in blacklist),
    )


def build_settings(config: dict) -> Settings:
    """Turn a loaded config mapping into validated Settings."""
    config = interpolate_variables(config)
    scopes = {kind: parse_scope(kind, config.get(kind)) for kind in NETWORK_KINDS}

    port = config.get("port", DEFAULT_PORT)
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port '{port}'")
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid port {port}: must be between 1 and 65535")

    debug = config.get("debug", False)
    if isinstance(debug, str):
        debug = debug.strip().lower() in ("1", "true", "yes", "on")

    return Settings(
        bridge=scopes["bridge"],
        overlay=scopes["overlay"],
        debug=bool(debug),
        port=port,
        unix_socket=str(config.get("unix_socket") or DEFAULT_UNIX_SOCKET),
    )


def load_settings(path: str | None = None) -> Settings:
    """Locate, load and validate the config file."""
    return build_settings(load_config(resolve_config_path(path)))
