"""
Shared Pydantic base for resource schemas.
Fields are snake_case in Python and camelCase on the wire; either spelling is
accepted on input.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
