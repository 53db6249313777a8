"""
app/schemas/content.py

Purpose: Content page request schemas

- Block values are checked against the block type
- Sections and blocks are returned sorted by `order`
"""

from typing import List, Optional, Union

from pydantic import Field, field_validator, model_validator

from app.schemas.base import DocumentModel
from app.models.content import BlockType
from utils.validation_utils import SLUG_PATTERN


class FaqItem(DocumentModel):
    question: str = Field(..., max_length=500)
    answer: str = Field(..., max_length=2000)

    @field_validator("question", "answer")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Question and answer cannot be empty")
        return v


class ContentBlock(DocumentModel):
    type: BlockType
    value: Union[str, List[FaqItem], List[str]]
    order: int = Field(0, ge=0, le=999)

    @model_validator(mode="after")
    def check_value_matches_type(self):
        if self.type == BlockType.LIST:
            if not isinstance(self.value, list) or not self.value:
                raise ValueError("list blocks need at least one item")
            if not all(isinstance(item, str) and item.strip() for item in self.value):
                raise ValueError("list items must be non-empty strings")
            if len(self.value) > 20:
                raise ValueError("list blocks can hold at most 20 items")
            self.value = [item.strip() for item in self.value]
        elif self.type == BlockType.FAQ:
            if not isinstance(self.value, list) or not self.value:
                raise ValueError("faq blocks need at least one question")
            if not all(isinstance(item, FaqItem) for item in self.value):
                raise ValueError("faq items must have a question and an answer")
            if len(self.value) > 50:
                raise ValueError("faq blocks can hold at most 50 questions")
        else:
            if not isinstance(self.value, str) or not self.value.strip():
                raise ValueError(f"{self.type} blocks need a non-empty text value")
            if len(self.value) > 5000:
                raise ValueError("block content cannot exceed 5000 characters")
            self.value = self.value.strip()
        return self


class ContentSection(DocumentModel):
    title: str = Field(..., min_length=1, max_length=200)
    order: int = Field(..., ge=0, le=999)
    blocks: List[ContentBlock] = Field(..., min_length=1, max_length=100)

    @field_validator("blocks")
    @classmethod
    def sort_blocks(cls, v: List[ContentBlock]) -> List[ContentBlock]:
        return sorted(v, key=lambda block: block.order)


def _sort_sections(sections: List[ContentSection]) -> List[ContentSection]:
    return sorted(sections, key=lambda section: section.order)


def _check_slug(v: str) -> str:
    v = v.strip().lower()
    if not 2 <= len(v) <= 100 or not SLUG_PATTERN.match(v):
        raise ValueError("Slug must be 2-100 chars of a-z, 0-9, '-', '_' or '/'")
    return v


class ContentPageCreate(DocumentModel):
    slug: str
    title: str = Field(..., min_length=1, max_length=200)
    sections: List[ContentSection] = Field(..., min_length=1, max_length=20)
    is_active: bool = True

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return _check_slug(v)

    @field_validator("sections")
    @classmethod
    def sort_sections(cls, v: List[ContentSection]) -> List[ContentSection]:
        return _sort_sections(v)


class ContentPageUpdate(DocumentModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    sections: Optional[List[ContentSection]] = Field(None, min_length=1, max_length=20)
    is_active: Optional[bool] = None

    @field_validator("sections")
    @classmethod
    def sort_sections(cls, v: Optional[List[ContentSection]]) -> Optional[List[ContentSection]]:
        return _sort_sections(v) if v is not None else v

    @model_validator(mode="after")
    def require_a_change(self):
        if not self.model_fields_set:
            raise ValueError("Provide at least one field to update")
        return self
