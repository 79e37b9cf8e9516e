from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

from epistudy.canonical import get_canonical


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    return sha256_hex(Path(path).read_bytes())


def canonical_json_bytes(obj: Any, canonical: dict[str, Any]) -> bytes:
    """
    Deterministic JSON byte representation per CANONICAL.HASHING.CANONICAL_JSON.
    """
    sort_keys = bool(get_canonical(canonical, "HASHING.CANONICAL_JSON.SORT_KEYS"))
    ensure_ascii = bool(get_canonical(canonical, "HASHING.CANONICAL_JSON.ENSURE_ASCII"))
    separators = tuple(get_canonical(canonical, "HASHING.CANONICAL_JSON.SEPARATORS"))
    allow_nan = bool(get_canonical(canonical, "HASHING.CANONICAL_JSON.ALLOW_NAN"))
    s = json.dumps(
        obj,
        sort_keys=sort_keys,
        ensure_ascii=ensure_ascii,
        separators=separators,
        allow_nan=allow_nan,
    )
    return s.encode("utf-8")


def input_fingerprint(files: dict[str, Path], canonical: dict[str, Any]) -> str:
    """
    Fingerprint a named set of input files: sha256 over the canonical JSON of
    {name: sha256(file bytes)}.
    """
    obj = {name: sha256_file(p) for name, p in sorted(files.items())}
    return sha256_hex(canonical_json_bytes(obj, canonical))
