from __future__ import annotations

import re
from typing import Any, Iterable

from epistudy.canonical import bundled_path, load_canonical


class SqlTemplateError(RuntimeError):
    pass


_PARAM_RE = re.compile(r"@([A-Za-z_][A-Za-z0-9_]*)")
_DEFAULT_RE = re.compile(r"\{\s*DEFAULT\s+@([A-Za-z_][A-Za-z0-9_]*)\s*=\s*([^}]*)\}")


def load_sql_template(name: str, dialect: str = "sql_server", canonical: dict[str, Any] | None = None) -> str:
    canonical = canonical if canonical is not None else load_canonical()
    file_name = name if name.endswith(".sql") else f"{name}.sql"
    path = bundled_path(canonical, "PATH_SQL_DIR", dialect, file_name)
    if not path.exists():
        raise SqlTemplateError(f"Cannot find SQL template '{file_name}' for dialect '{dialect}'")
    return path.read_text(encoding="utf-8")


def template_defaults(sql: str) -> dict[str, str]:
    return {m.group(1): m.group(2).strip().strip("'\"") for m in _DEFAULT_RE.finditer(sql)}


def template_parameters(sql: str) -> tuple[set[str], set[str]]:
    """Return (required, defaulted) parameter names referenced as @name."""
    defaults = set(template_defaults(sql))
    names = set(_PARAM_RE.findall(sql))
    return names - defaults, names & defaults


def check_parameters(sql: str, provided: Iterable[str]) -> None:
    """Raise if a required @parameter is not in provided; rendering stays with the SQL engine."""
    required, defaulted = template_parameters(sql)
    provided = set(provided)
    missing = sorted(required - provided)
    if missing:
        raise SqlTemplateError(f"Missing SQL parameters: {missing}")
    unknown = sorted(provided - required - defaulted)
    if unknown:
        raise SqlTemplateError(f"Unknown SQL parameters: {unknown}")
