"""
Attachment Pydantic schemas.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from tasktracker.schemas.base import CamelModel


class AttachmentRead(CamelModel):
    id: uuid.UUID
    filename: str
    mime_type: str
    size: int
    created_at: datetime


class AttachmentUploadResponse(BaseModel):
    message: str
    attachments: list[AttachmentRead]
