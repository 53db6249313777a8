"""
app/models/content.py

Purpose: Content page document model

- Pages addressed by slug, made of ordered sections
- Sections hold ordered, typed blocks
"""

from enum import Enum


class BlockType(str, Enum):
    PARAGRAPH = "paragraph"
    LIST = "list"
    IMAGE = "image"
    LINK = "link"
    FAQ = "faq"
