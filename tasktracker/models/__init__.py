"""
ORM model package. Import all models here so Alembic autogenerate
can discover every table through the shared Base metadata.
"""
from tasktracker.models.user import User  # noqa: F401
from tasktracker.models.task import Task  # noqa: F401
from tasktracker.models.attachment import Attachment  # noqa: F401
