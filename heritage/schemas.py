from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    TEMPLE = "temple"
    ANCIENT_TECH = "ancient-tech"
    FESTIVAL = "festival"
    MONUMENT = "monument"
    ART = "art"
    TRADITION = "tradition"
    OTHER = "other"


# Wire names are camelCase (imageUrls, metaDescription); Python names stay snake_case.
_camel_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
)

ImageUrl = Annotated[str, Field(min_length=1, max_length=2048)]
Keyword = Annotated[str, Field(min_length=1, max_length=100)]


# --- Identity ---

class Caller(BaseModel):
    """Identity resolved by the auth layer for the current request."""

    id: int
    name: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# --- Entry ---

class EntryCreate(BaseModel):
    model_config = _camel_config

    title: str = Field(min_length=1, max_length=300)
    category: Category
    image_urls: list[ImageUrl] = Field(min_length=1)
    content: str = Field(min_length=1)
    location: str = Field(min_length=1, max_length=300)
    meta_description: str = ""
    keywords: list[Keyword] = []


class EntryUpdate(BaseModel):
    model_config = _camel_config

    title: str | None = Field(None, min_length=1, max_length=300)
    category: Category | None = None
    image_urls: list[ImageUrl] | None = Field(None, min_length=1)
    content: str | None = Field(None, min_length=1)
    location: str | None = Field(None, min_length=1, max_length=300)
    meta_description: str | None = None
    keywords: list[Keyword] | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    model_config = _camel_config

    text: str = Field(min_length=1, max_length=5000)


# --- Responses ---

class EntryListResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entries: list  # plain dicts produced by the service layer
    total_pages: int
    current_page: int
    total: int


class LikeResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = "Like toggled"
    likes: int
    is_liked: bool
