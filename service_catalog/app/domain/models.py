"""
Request and response models for the Catalog Service.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DirectorCreateRequest(BaseModel):
    """Request model for creating a director."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    birth_date: date = Field(..., description="Birth date (YYYY-MM-DD)")
    bio: Optional[str] = Field(None, min_length=1, max_length=1000, description="Short biography")


class DirectorUpdateRequest(BaseModel):
    """Request model for updating a director."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    birth_date: Optional[date] = None
    bio: Optional[str] = Field(None, min_length=1, max_length=1000)


class MovieCreateRequest(BaseModel):
    """Request model for creating a movie."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(..., min_length=1, max_length=200, description="Movie title")
    description: str = Field(..., min_length=1, max_length=2000, description="Synopsis")
    release_date: date = Field(..., description="Release date (YYYY-MM-DD)")
    genre: str = Field(..., min_length=1, max_length=50, description="Genre")
    rating: Optional[float] = Field(None, ge=0, le=10, description="Rating between 0 and 10")
    imdb_id: str = Field(..., min_length=1, max_length=50, description="IMDB identifier")
    director_id: str = Field(..., min_length=1, description="ID of an existing director")


class MovieUpdateRequest(BaseModel):
    """Request model for updating a movie."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    release_date: Optional[date] = None
    genre: Optional[str] = Field(None, min_length=1, max_length=50)
    rating: Optional[float] = Field(None, ge=0, le=10)
    imdb_id: Optional[str] = Field(None, min_length=1, max_length=50)
    director_id: Optional[str] = Field(None, min_length=1)


class DirectorSummary(BaseModel):
    """Director reference embedded in movie payloads."""
    id: str
    first_name: str
    last_name: str


class PaginatedResponse(BaseModel):
    """Response model for paginated collection reads."""
    data: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int


# Fields a collection may be sorted by.
DIRECTOR_SORT_FIELDS = frozenset({"first_name", "last_name", "birth_date", "created_at", "updated_at"})
MOVIE_SORT_FIELDS = frozenset({"title", "release_date", "genre", "rating", "imdb_id", "created_at", "updated_at"})
