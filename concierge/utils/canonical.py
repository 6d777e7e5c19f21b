"""
Canonical forms for loosely-typed facet names and values.

Facet names and option values arrive as free-form strings from the catalog,
the shopper and the generation service. Every equality or set-membership check
in the decision core goes through these helpers.
"""
import re
from typing import Any, Iterable, List, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_SEPARATORS = re.compile(r"[_\-]+")


def canonicalize_value(value: Any) -> str:
    """
    Canonical comparison key for a facet value.

    Trims, lowercases and collapses every run of non-alphanumeric characters
    into a single underscore ("All-Mountain " -> "all_mountain",
    "Under $50" -> "under_50").

    Args:
        value: Raw value (None and non-strings are accepted)

    Returns:
        Canonical key, or "" for empty input
    """
    if value is None:
        return ""
    text = str(value).strip().lower()
    if not text:
        return ""
    return _NON_ALNUM.sub("_", text).strip("_")


def canonicalize_facet(facet: Any) -> str:
    """Canonical facet name ("Price Bucket" -> "price_bucket")."""
    return canonicalize_value(facet)


def same_value(left: Any, right: Any) -> bool:
    """True when both values share a non-empty canonical key."""
    key = canonicalize_value(left)
    return bool(key) and key == canonicalize_value(right)


def mentions_value(text: Any, value: Any) -> bool:
    """
    True when the canonical form of `value` appears in `text` as whole tokens.

    "under $50 please" mentions "Under $50"; "under $500" and "bored" do not
    mention "Under $50" and "red".
    """
    key = canonicalize_value(value)
    if not key:
        return False
    return re.search(rf"(^|_){re.escape(key)}(_|$)", canonicalize_value(text)) is not None


def dedupe_values(values: Iterable[Any], limit: Optional[int] = None) -> List[str]:
    """
    Deduplicate values by canonical key, keeping the first display form seen.

    Args:
        values: Raw values in priority order
        limit: Optional maximum number of values to return

    Returns:
        Trimmed display values, order preserved
    """
    seen = set()
    result: List[str] = []
    for value in values:
        key = canonicalize_value(value)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(str(value).strip())
        if limit is not None and len(result) >= limit:
            break
    return result


def humanize_value(value: Any) -> str:
    """Title-case a snake/kebab value for display ("all_mountain" -> "All Mountain")."""
    if value is None:
        return ""
    parts = [p for p in _SEPARATORS.split(str(value).strip()) if p]
    return " ".join(p[:1].upper() + p[1:] for p in " ".join(parts).split())
