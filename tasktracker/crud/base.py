"""
Generic async data access shared by the user and task repositories.
Subclasses name the columns that can never change after insert; ``update``
skips them whatever the caller passes.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.db.base import Base

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, UpdateSchemaType]):
    """
    Type parameters:
        ModelType: the mapped class this repository reads and writes.
        UpdateSchemaType: the partial-update schema accepted by ``update``.
    """

    immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at"})

    def __init__(self, model: type[ModelType]) -> None:
        self.model = model

    async def get(self, db: AsyncSession, id: uuid.UUID) -> ModelType | None:
        result = await db.execute(select(self.model).where(self.model.id == id))  # type: ignore[attr-defined]
        return result.scalar_one_or_none()

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: UpdateSchemaType | Mapping[str, Any],
    ) -> ModelType:
        """
        Apply the supplied fields and flush. A schema contributes only the
        fields the client actually set. No refresh: mapped defaults are
        Python-side, so the instance is already current after the flush.
        """
        if isinstance(obj_in, BaseModel):
            changes = obj_in.model_dump(exclude_unset=True)
        else:
            changes = dict(obj_in)

        ignored = self.immutable_fields & changes.keys()
        if ignored:
            logger.debug("Ignoring immutable %s fields: %s", self.model.__name__, sorted(ignored))

        for field, value in changes.items():
            if field not in ignored:
                setattr(db_obj, field, value)

        db.add(db_obj)
        await db.flush()
        return db_obj
