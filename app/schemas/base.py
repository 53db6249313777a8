"""
app/schemas/base.py

Purpose: Shared base for request schemas

- Enums are stored by value so dumped payloads can go straight to Mongo
- Incoming datetimes are stored as naive UTC, like every stored timestamp
"""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict

from utils.time_utils import to_naive_utc


class DocumentModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]
