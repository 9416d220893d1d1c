"""
Movie and director business logic: validation, pagination, existence checks.
"""

import re
from datetime import date
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel

from shared.logging import get_logger
from shared.errors import ConflictError, NotFoundError, ValidationError
from ..persistence.memory import Document, InMemoryDocumentRepository
from .models import (
    DIRECTOR_SORT_FIELDS,
    MOVIE_SORT_FIELDS,
    DirectorCreateRequest,
    DirectorSummary,
    DirectorUpdateRequest,
    MovieCreateRequest,
    MovieUpdateRequest,
)


_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")
SORT_ORDERS = ("asc", "desc")
UNSORTED = "default"


def validate_id(value: str, label: str) -> str:
    if not _ID_PATTERN.match(value or ""):
        raise ValidationError(f"Invalid {label} ID format", {"id": value})
    return value


def validate_date_range(from_date: date, to_date: date) -> None:
    if from_date > to_date:
        raise ValidationError(
            "Start date must be before end date",
            {"from": from_date.isoformat(), "to": to_date.isoformat()},
        )


def _pagination_args(
    page: int,
    limit: int,
    sort_by: Optional[str],
    sort_order: Optional[str],
    allowed: FrozenSet[str],
    max_page_size: int,
) -> Dict[str, Any]:
    if page < 1:
        raise ValidationError("Page must be greater than or equal to 1", {"page": page})
    if limit < 1 or limit > max_page_size:
        raise ValidationError(f"Limit must be between 1 and {max_page_size}", {"limit": limit})

    order = (sort_order or "").strip().lower() or "asc"
    if order not in SORT_ORDERS:
        raise ValidationError("Sort order must be 'asc' or 'desc'", {"sortOrder": sort_order})

    # Blank and the "default" sentinel both mean insertion order.
    field_name = (sort_by or "").strip()
    if field_name in ("", UNSORTED):
        field_name = None
    elif field_name not in allowed:
        raise ValidationError(
            f"Cannot sort by '{sort_by}'",
            {"sortBy": sort_by, "allowed": sorted(allowed)},
        )

    return {"page": page, "limit": limit, "sort_by": field_name, "sort_order": order}


def _dump(model: BaseModel, *, partial: bool = False, nullable: FrozenSet[str] = frozenset()) -> Dict[str, Any]:
    data = model.model_dump(mode="json", exclude_unset=partial)
    if partial:
        # An explicit null only clears optional fields.
        data = {name: value for name, value in data.items() if value is not None or name in nullable}
    return data


class DirectorService:
    """Directors CRUD and lookups."""

    def __init__(self, repository: InMemoryDocumentRepository, max_page_size: int = 100):
        self.repository = repository
        self.max_page_size = max_page_size
        self.logger = get_logger("catalog.directors")

    async def list_directors(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = "asc",
    ) -> Dict[str, Any]:
        args = _pagination_args(page, limit, sort_by, sort_order, DIRECTOR_SORT_FIELDS, self.max_page_size)
        result = await self.repository.find_with_pagination(**args)
        return result.to_dict()

    async def create_director(self, request: DirectorCreateRequest) -> Document:
        director = await self.repository.create(_dump(request))
        self.logger.info("Director created", director_id=director["id"])
        return director

    async def get_director(self, director_id: str) -> Document:
        validate_id(director_id, "director")
        director = await self.repository.find_by_id(director_id)
        if director is None:
            raise NotFoundError(f"Director with ID {director_id} not found")
        return director

    async def update_director(self, director_id: str, request: DirectorUpdateRequest) -> Document:
        validate_id(director_id, "director")
        changes = _dump(request, partial=True, nullable=frozenset({"bio"}))
        director = await self.repository.update(director_id, changes)
        if director is None:
            raise NotFoundError(f"Director with ID {director_id} not found")
        self.logger.info("Director updated", director_id=director_id, fields=sorted(changes))
        return director

    async def delete_director(self, director_id: str) -> None:
        validate_id(director_id, "director")
        if not await self.repository.delete(director_id):
            raise NotFoundError(f"Director with ID {director_id} not found")
        self.logger.info("Director deleted", director_id=director_id)

    async def find_by_birth_date_range(self, from_date: date, to_date: date) -> List[Document]:
        validate_date_range(from_date, to_date)
        lower, upper = from_date.isoformat(), to_date.isoformat()
        return await self.repository.find_where(lambda director: lower <= director["birth_date"] <= upper)

    async def find_by_name(self, first_name: Optional[str] = None, last_name: Optional[str] = None) -> List[Document]:
        first = (first_name or "").strip().lower()
        last = (last_name or "").strip().lower()
        if not first and not last:
            raise ValidationError("At least one of first_name or last_name must be provided")

        return await self.repository.find_where(
            lambda director: first in director["first_name"].lower() and last in director["last_name"].lower()
        )


class MovieService:
    """Movies CRUD and searches. Every movie must reference an existing director."""

    def __init__(
        self,
        repository: InMemoryDocumentRepository,
        directors: DirectorService,
        max_page_size: int = 100,
    ):
        self.repository = repository
        self.directors = directors
        self.max_page_size = max_page_size
        self.logger = get_logger("catalog.movies")

    async def _embed_director(self, movie: Document) -> Document:
        director = await self.directors.repository.find_by_id(movie["director_id"])
        movie["director"] = (
            DirectorSummary.model_validate(director).model_dump()
            if director is not None
            else None
        )
        return movie

    async def _embed_all(self, movies: List[Document]) -> List[Document]:
        return [await self._embed_director(movie) for movie in movies]

    async def _ensure_unique_imdb_id(self, imdb_id: str, movie_id: Optional[str] = None) -> None:
        existing = await self.repository.find_one({"imdb_id": imdb_id})
        if existing is not None and existing["id"] != movie_id:
            raise ConflictError(f"Movie with IMDB ID {imdb_id} already exists", {"imdb_id": imdb_id})

    async def list_movies(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = "asc",
    ) -> Dict[str, Any]:
        args = _pagination_args(page, limit, sort_by, sort_order, MOVIE_SORT_FIELDS, self.max_page_size)
        result = await self.repository.find_with_pagination(**args)
        result.data = await self._embed_all(result.data)
        return result.to_dict()

    async def create_movie(self, request: MovieCreateRequest) -> Document:
        await self.directors.get_director(request.director_id)
        await self._ensure_unique_imdb_id(request.imdb_id)

        movie = await self.repository.create(_dump(request))
        self.logger.info("Movie created", movie_id=movie["id"], director_id=movie["director_id"])
        return await self._embed_director(movie)

    async def get_movie(self, movie_id: str) -> Document:
        validate_id(movie_id, "movie")
        movie = await self.repository.find_by_id(movie_id)
        if movie is None:
            raise NotFoundError(f"Movie with ID {movie_id} not found")
        return await self._embed_director(movie)

    async def update_movie(self, movie_id: str, request: MovieUpdateRequest) -> Document:
        validate_id(movie_id, "movie")
        changes = _dump(request, partial=True, nullable=frozenset({"rating"}))
        if changes.get("director_id") is not None:
            await self.directors.get_director(changes["director_id"])
        if changes.get("imdb_id") is not None:
            await self._ensure_unique_imdb_id(changes["imdb_id"], movie_id)

        movie = await self.repository.update(movie_id, changes)
        if movie is None:
            raise NotFoundError(f"Movie with ID {movie_id} not found")
        self.logger.info("Movie updated", movie_id=movie_id, fields=sorted(changes))
        return await self._embed_director(movie)

    async def delete_movie(self, movie_id: str) -> None:
        validate_id(movie_id, "movie")
        if not await self.repository.delete(movie_id):
            raise NotFoundError(f"Movie with ID {movie_id} not found")
        self.logger.info("Movie deleted", movie_id=movie_id)

    async def get_movies_by_director(self, director_id: str) -> List[Document]:
        await self.directors.get_director(director_id)
        return await self._embed_all(await self.repository.find({"director_id": director_id}))

    async def get_movie_by_imdb_id(self, imdb_id: str) -> Document:
        movie = await self.repository.find_one({"imdb_id": imdb_id})
        if movie is None:
            raise NotFoundError(f"Movie with IMDB ID {imdb_id} not found")
        return await self._embed_director(movie)

    async def get_movies_by_genre(self, genre: str) -> List[Document]:
        if not genre.strip():
            raise ValidationError("Genre is required")
        return await self._embed_all(await self.repository.find({"genre": genre.strip()}))

    async def get_movies_by_release_date_range(self, from_date: date, to_date: date) -> List[Document]:
        validate_date_range(from_date, to_date)
        lower, upper = from_date.isoformat(), to_date.isoformat()
        return await self._embed_all(
            await self.repository.find_where(lambda movie: lower <= movie["release_date"] <= upper)
        )

    async def get_movies_by_rating_range(self, min_rating: float, max_rating: float) -> List[Document]:
        if min_rating < 0 or max_rating > 10:
            raise ValidationError("Rating must be between 0 and 10", {"min": min_rating, "max": max_rating})
        if min_rating > max_rating:
            raise ValidationError(
                "Minimum rating must be less than or equal to maximum rating",
                {"min": min_rating, "max": max_rating},
            )

        return await self._embed_all(
            await self.repository.find_where(
                lambda movie: movie.get("rating") is not None and min_rating <= movie["rating"] <= max_rating
            )
        )
