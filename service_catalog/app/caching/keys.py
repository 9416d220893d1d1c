"""
Deterministic cache keys for paginated collection reads.
"""

from typing import Any, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_SORT_BY = "default"
DEFAULT_SORT_ORDER = "asc"

LIST_SEGMENT = "list"

# Query parameter names as they appear on the wire.
PAGE_PARAM = "page"
LIMIT_PARAM = "limit"
SORT_BY_PARAM = "sortBy"
SORT_ORDER_PARAM = "sortOrder"


def _segment(value: Any) -> str:
    # Percent-encode so ':' and glob metacharacters inside a value can neither
    # alias another key nor widen an invalidation pattern.
    return quote(str(value), safe="")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _canonical_int(value: Any, default: int) -> str:
    if value is None:
        return str(default)
    text = str(value)
    if text.isascii() and text.isdigit():
        return str(int(text))
    # Anything else (blank, signs, spaces, underscores) keeps its own key so
    # the handler alone decides its status.
    return text


class CacheKeyBuilder:
    """Map an entity type and its pagination/sort parameters to a cache key.

    Absent parameters are replaced with the defaults before the key is built,
    so ``GET /movies`` and ``GET /movies?page=1&limit=10`` share one entry::

        movies:list:1:10:default:asc

    Two requests may only share a key when the list handler treats them
    identically: blank sort parameters mean "unsorted"/"asc" to both, while a
    blank or non-digit page or limit keeps its raw text because the handler
    rejects it.
    """

    def __init__(
        self,
        *,
        default_page: int = DEFAULT_PAGE,
        default_limit: int = DEFAULT_LIMIT,
        default_sort_by: str = DEFAULT_SORT_BY,
        default_sort_order: str = DEFAULT_SORT_ORDER,
    ):
        self.default_page = default_page
        self.default_limit = default_limit
        self.default_sort_by = default_sort_by
        self.default_sort_order = default_sort_order

    def normalize(
        self,
        page: Any = None,
        limit: Any = None,
        sort_by: Any = None,
        sort_order: Any = None,
    ) -> Tuple[str, str, str, str]:
        """Return the canonical (page, limit, sort_by, sort_order) tuple."""
        return (
            _canonical_int(page, self.default_page),
            _canonical_int(limit, self.default_limit),
            self.default_sort_by if _blank(sort_by) else str(sort_by).strip(),
            self.default_sort_order if _blank(sort_order) else str(sort_order).strip().lower(),
        )

    def build(
        self,
        entity_type: str,
        page: Any = None,
        limit: Any = None,
        sort_by: Any = None,
        sort_order: Any = None,
    ) -> str:
        """Build the list key for an entity type."""
        parts = [entity_type, LIST_SEGMENT, *self.normalize(page, limit, sort_by, sort_order)]
        return ":".join(_segment(part) for part in parts)

    def from_query(self, entity_type: str, query: Mapping[str, Any]) -> str:
        """Build the list key from raw query parameters."""
        return self.build(
            entity_type,
            page=query.get(PAGE_PARAM),
            limit=query.get(LIMIT_PARAM),
            sort_by=query.get(SORT_BY_PARAM),
            sort_order=query.get(SORT_ORDER_PARAM),
        )

    def pattern(self, entity_type: str) -> str:
        """Glob pattern matching every key of an entity type."""
        return f"{_segment(entity_type)}:*"


def split_entity_path(path: str, api_prefix: str, entity_types: Iterable[str]) -> Optional[Tuple[str, List[str]]]:
    """Resolve ``{api_prefix}/{entity}/...`` into (entity, remaining segments).

    Returns None when the path does not address a known entity collection.
    """
    prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
    if prefix:
        if path != prefix and not path.startswith(prefix + "/"):
            return None
        path = path[len(prefix):]

    segments = [segment for segment in path.split("/") if segment]
    if not segments or segments[0] not in set(entity_types):
        return None
    return segments[0], segments[1:]
