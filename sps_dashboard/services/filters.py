"""
In-memory list filtering for the management screens.

Lists are fetched once per request and narrowed here, so a new search term
never costs another round of queries per field.
"""
from typing import Any, Iterable, List, Mapping, Optional, Sequence

ALL = "all"


def matches_search(term: Optional[str], *fields: Optional[str]) -> bool:
    """Case-insensitive substring match of term against any of fields."""
    needle = (term or "").strip().lower()
    if not needle:
        return True
    return any(needle in str(f).lower() for f in fields if f)


def matches_exact(selected: Optional[str], value: Optional[str]) -> bool:
    if selected is None or selected == "" or selected == ALL:
        return True
    return value == selected


def _filter(rows: Iterable[Mapping[str, Any]], term, search_keys: Sequence[str], selected, exact_key: str) -> List[Mapping[str, Any]]:
    return [
        r for r in rows
        if matches_search(term, *(r.get(k) for k in search_keys)) and matches_exact(selected, r.get(exact_key))
    ]


def filter_users(rows, q: Optional[str] = None, role: Optional[str] = None):
    return _filter(rows, q, ("first_name", "last_name", "email"), role, "role")


def filter_missions(rows, q: Optional[str] = None, status: Optional[str] = None):
    return _filter(rows, q, ("title", "client_name", "address", "city"), status, "status")


def filter_reports(rows, q: Optional[str] = None, status: Optional[str] = None):
    return _filter(rows, q, ("title", "client", "address"), status, "status")
