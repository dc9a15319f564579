from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from postshelf.core.urls import validate_content_url

ProcessingStatus = Literal["processing", "extracting", "analyzing", "completed", "failed"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PostOut(CamelModel):
    id: int
    url: str
    author_name: str | None = None
    author_image: str | None = None
    content: str | None = None
    post_image: str | None = None
    published_date: datetime | None = None
    categories: list[str] = Field(default_factory=list)
    summary: str | None = None
    confidence: str | None = None
    process_error: str | None = None
    processing_status: ProcessingStatus = "processing"
    created_at: datetime


class AnalyzeRequest(CamelModel):
    url: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return validate_content_url(value)


class AnalyzeAccepted(CamelModel):
    message: str
    post_id: int
    post: PostOut
    exists: bool


class UpdateCategoriesRequest(CamelModel):
    categories: list[str] = Field(default_factory=list)
    new_categories: list[str] = Field(default_factory=list)


class ManualContentRequest(CamelModel):
    content: str
    author_name: str | None = None

    @field_validator("content")
    @classmethod
    def _check_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Valid post content is required")
        return value


class AuthorReextractOut(CamelModel):
    message: str
    post: PostOut


class PostDeletedOut(CamelModel):
    success: bool
    message: str
