from __future__ import annotations

import json
import os
import re
import tomllib
from typing import Any, Optional
import collections.abc

import yaml

from tern.tern_errors import ProgramFormatError


_EXTENSIONS = {
    '.json': 'json',
    '.yaml': 'yaml',
    '.yml': 'yaml',
    '.toml': 'toml',
}


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        enc = encoding or 'utf-8'
        try:
            return data.decode(enc)
        except (LookupError, UnicodeDecodeError):
            return data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def _encoding_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    m = re.search(r'charset\s*=\s*([^\s;]+)', content_type, re.IGNORECASE)
    if m:
        return m.group(1).strip('"').strip("'")
    return None


def _to_builtin(obj: Any) -> Any:
    # Array and Dictionary become plain lists and dicts, recursively
    if isinstance(obj, (str, bytes)):
        return obj
    if isinstance(obj, collections.abc.Mapping):
        return {k: _to_builtin(v) for k, v in obj.items()}
    if isinstance(obj, collections.abc.Sequence):
        return [_to_builtin(x) for x in obj]
    return obj


def detect_format(content_type: Optional[str] = None,
                  data_hint: Optional[str] = None,
                  path: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml', 'toml'.
    Uses the file extension first, then Content-Type, then simple data sniffing.
    """
    if path:
        fmt = _EXTENSIONS.get(os.path.splitext(path)[1].lower())
        if fmt:
            return fmt
    ct = (content_type or "").lower()
    if 'json' in ct:
        return 'json'
    if 'yaml' in ct:
        return 'yaml'
    if 'toml' in ct:
        return 'toml'

    # Heuristics based on data
    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
        if s.startswith('---') or s.startswith('- ') or s.startswith('tag:'):
            return 'yaml'
        # TOML heuristic is weak; caller should pass fmt when possible.
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                content_type: Optional[str] = None,
                fmt: Optional[str] = None) -> Any:
    """
    Convert a serialized program document to plain Python structures.
    Supported fmt: 'json', 'yaml', 'toml'.
    If fmt is None, uses content_type, then sniffing, then YAML (a JSON superset).
    Raises ProgramFormatError when the text does not decode.
    """
    enc = _encoding_from_content_type(content_type)
    text = _norm_text(data, encoding=enc)
    f = (fmt or detect_format(content_type, text) or 'yaml').lower()
    try:
        if f == 'json':
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                # Fallback to YAML if declared JSON but content is actually YAML-like
                return yaml.safe_load(text)
        if f == 'yaml':
            return yaml.safe_load(text)
        if f == 'toml':
            return tomllib.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise ProgramFormatError(f"invalid {f} document: {e}") from e
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any,
              *,
              fmt: str,
              pretty: bool = True) -> str:
    """
    Convert a runtime value into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = _to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False, default_flow_style=not pretty)
    if f == 'toml':
        raise ValueError("TOML serialization is not supported (tomllib is read-only)")
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def load_document(path: str) -> Any:
    """Reads a program document from disk, choosing the format by extension."""
    fmt = detect_format(path=path)
    if fmt is None:
        raise ProgramFormatError(
            f"cannot tell the format of {path!r}; expected one of "
            + ", ".join(sorted(_EXTENSIONS))
        )
    with open(path, "rb") as f:
        data = f.read()
    return deserialize(data, fmt=fmt)


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "load_document",
]
