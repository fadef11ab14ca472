import copy
import hashlib
import jsonpickle
from benedict import benedict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Union


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data):
    """
    Returns a canonical JSON representation of a dictionary.

    The JSON string uses sorted keys, which ensures that the representation of
    the dictionary remains consistent even when key order varies.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def digest(data: Union[str, bytes, Dict]) -> str:
    """Short sha256 digest of a string, bytes or dict."""
    if isinstance(data, dict):
        data = canonicalize_dict(data)
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:16]


def upsert_condition(conds, newc, timestamp: Optional[str] = None):
    """In-memory merge by .type. Only bump lastTransitionTime when status flips."""
    conds = list(conds or [])
    ts = timestamp or now()
    for i, c in enumerate(conds):
        if c.get("type") == newc["type"]:
            ltt = c.get("lastTransitionTime") or ts
            if c.get("status") != newc["status"]:
                ltt = ts
            merged = {**c, **newc, "lastTransitionTime": ltt}
            conds[i] = merged
            break
    else:
        conds.append({**newc, "lastTransitionTime": ts})
    return conds


def deep_compare_dict(data1, data2) -> bool:
    """Compare two data structures deeply, ignoring key order.

    Args:
        data1: First data structure (dict, list, or nested combination)
        data2: Second data structure (dict, list, or nested combination)

    Returns:
        True if data structures are equivalent, False otherwise
    """
    if data1 is None and data2 is None:
        return True
    if data1 is None or data2 is None:
        return False

    if not isinstance(data1, type(data2)) and not isinstance(data2, type(data1)):
        return False

    try:
        return canonicalize_dict(data1) == canonicalize_dict(data2)
    except (TypeError, ValueError):
        return data1 == data2


def parse_overrides(overrides: Union[Mapping, Iterable[str], None]) -> Dict[str, Any]:
    """Normalize tenant overrides into a nested mapping.

    Overrides are either a mapping already, or a list of `a.b.c=value`
    assignments in the style of `helm --set`, which are expanded into nested
    keys. Later assignments win.
    """
    if not overrides:
        return {}
    if isinstance(overrides, Mapping):
        return copy.deepcopy(dict(overrides))
    result = benedict(keypath_separator=".")
    for item in overrides:
        key, sep, value = str(item).partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid override `{item}`, expected key=value.")
        result[key.strip()] = _coerce_scalar(value.strip())
    return result.dict()


def _coerce_scalar(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "~"):
        return None
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass
    return value


def merge_values(defaults: Optional[Mapping], overrides: Optional[Mapping]) -> Dict[str, Any]:
    """Deep merge `overrides` over `defaults`; neither input is mutated.

    Nested mappings are merged key by key, every other value (lists included)
    in `overrides` replaces the default.
    """
    merged = benedict(copy.deepcopy(dict(defaults or {})), keypath_separator=None)
    merged.merge(copy.deepcopy(dict(overrides or {})), overwrite=True, concat=False)
    return merged.dict()


def truncate_name(name: str, limit: int) -> str:
    """Truncate a kubernetes name to `limit` characters without a trailing separator."""
    return name[:limit].rstrip("-.")


def label_selector_to_dict(selector: str) -> Dict[str, str]:
    """Parse an equality based label selector (`a=b,c=d`)."""
    labels: Dict[str, str] = {}
    for term in (selector or "").split(","):
        term = term.strip()
        if not term:
            continue
        key, _, value = term.partition("=")
        labels[key.strip()] = value.strip().lstrip("=")
    return labels
