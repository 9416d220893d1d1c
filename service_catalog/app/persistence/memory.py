"""
In-process document repository.
"""

import copy
import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger


Document = Dict[str, Any]


@dataclass
class PaginatedResult:
    """One page of documents."""
    data: List[Document] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


def _new_id() -> str:
    # 24 hex characters, the same shape as a document database object id.
    return secrets.token_hex(12)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(document: Document, filters: Dict[str, Any]) -> bool:
    return all(document.get(name) == value for name, value in filters.items())


class InMemoryDocumentRepository:
    """Dictionary-backed collection with the document store's query surface.

    Documents are returned as copies so callers can never mutate stored state.
    """

    def __init__(self, collection: str):
        self.collection = collection
        self.logger = get_logger(f"catalog.repository.{collection}")
        self._documents: Dict[str, Document] = {}

    async def create(self, data: Document) -> Document:
        document = dict(data)
        document["id"] = _new_id()
        document["created_at"] = document["updated_at"] = _now()
        self._documents[document["id"]] = document
        self.logger.debug("Document created", id=document["id"])
        return copy.deepcopy(document)

    async def find_by_id(self, document_id: str) -> Optional[Document]:
        document = self._documents.get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def find_one(self, filters: Dict[str, Any]) -> Optional[Document]:
        for document in self._documents.values():
            if _matches(document, filters):
                return copy.deepcopy(document)
        return None

    async def find(self, filters: Optional[Dict[str, Any]] = None) -> List[Document]:
        return [copy.deepcopy(document) for document in self._documents.values() if _matches(document, filters or {})]

    async def find_where(self, predicate: Callable[[Document], bool]) -> List[Document]:
        return [copy.deepcopy(document) for document in self._documents.values() if predicate(document)]

    async def find_with_pagination(
        self,
        filters: Optional[Dict[str, Any]] = None,
        *,
        page: int = 1,
        limit: int = 10,
        sort_by: Optional[str] = None,
        sort_order: str = "asc",
    ) -> PaginatedResult:
        documents = [document for document in self._documents.values() if _matches(document, filters or {})]

        if sort_by:
            # Missing values sort last regardless of direction.
            present = [document for document in documents if document.get(sort_by) is not None]
            missing = [document for document in documents if document.get(sort_by) is None]
            present.sort(key=lambda document: document[sort_by], reverse=sort_order == "desc")
            documents = present + missing

        start = (page - 1) * limit
        return PaginatedResult(
            data=[copy.deepcopy(document) for document in documents[start:start + limit]],
            total=len(documents),
            page=page,
            limit=limit,
        )

    async def update(self, document_id: str, data: Document) -> Optional[Document]:
        document = self._documents.get(document_id)
        if document is None:
            return None
        document.update(data)
        document["updated_at"] = _now()
        return copy.deepcopy(document)

    async def delete(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None
