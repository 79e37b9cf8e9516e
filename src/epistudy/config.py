from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from epistudy.canonical import get_canonical


class ConfigError(RuntimeError):
    pass


# Bare references need the CANONICAL. prefix.
_CANONICAL_REF_RE = re.compile(r"^CANONICAL\.[A-Z][A-Z0-9_]*(\.[A-Z][A-Z0-9_]*)+$")
_CANONICAL_TEMPLATE_RE = re.compile(r"\$\{CANONICAL\.([A-Za-z0-9_.]+)\}")
_ENV_TEMPLATE_RE = re.compile(r"\$\{ENV\.([A-Za-z_][A-Za-z0-9_]*)\}")


def _resolve_value(value: Any, canonical: dict[str, Any]) -> Any:
    if isinstance(value, str):
        # Template replacement: "${CANONICAL.FILES.ALL_CONTROLS_CSV}"
        def repl(match: re.Match[str]) -> str:
            dotted = match.group(1)
            resolved = get_canonical(canonical, dotted)
            return str(resolved)

        def repl_env(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in os.environ:
                raise ConfigError(f"Environment variable referenced by config is not set: {name}")
            return os.environ[name]

        value = _CANONICAL_TEMPLATE_RE.sub(repl, value)
        value = _ENV_TEMPLATE_RE.sub(repl_env, value)

        if _CANONICAL_REF_RE.match(value):
            return get_canonical(canonical, value)
        return value
    if isinstance(value, list):
        return [_resolve_value(v, canonical) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_value(v, canonical) for k, v in value.items()}
    return value


def load_config(config_path: str, canonical: dict[str, Any]) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    obj = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(obj, dict):
        raise ConfigError(f"Config {config_path} did not parse as a mapping")

    resolved = _resolve_value(obj, canonical)

    # Basic schema version sanity: if present, must match canonical schema version.
    schema_key = resolved.get("schema_version_key")
    if schema_key is not None:
        expected = int(get_canonical(canonical, "SCHEMAS.CONFIG_SCHEMA_VERSION"))
        if int(schema_key) != expected:
            raise ConfigError(f"Config schema_version_key mismatch: got {schema_key}, expected {expected}")
    return resolved


@dataclass(frozen=True)
class ConnectionDetails:
    """Opaque connection descriptor handed through to the signal injector."""

    dbms: str
    server: str | None = None
    user: str | None = None
    password: str | None = None
    port: int | None = None
    extra_settings: str | None = None

    @classmethod
    def from_mapping(cls, obj: Any) -> "ConnectionDetails":
        if not isinstance(obj, dict):
            raise ConfigError("connection must be a mapping")
        if not obj.get("dbms"):
            raise ConfigError("connection.dbms is required")
        unknown = set(obj) - {"dbms", "server", "user", "password", "port", "extra_settings"}
        if unknown:
            raise ConfigError(f"Unknown connection keys: {sorted(unknown)}")
        port = obj.get("port")
        return cls(
            dbms=str(obj["dbms"]),
            server=obj.get("server"),
            user=obj.get("user"),
            password=obj.get("password"),
            port=int(port) if port is not None else None,
            extra_settings=obj.get("extra_settings"),
        )

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks.
        return f"ConnectionDetails(dbms={self.dbms!r}, server={self.server!r}, user={self.user!r}, port={self.port!r})"
