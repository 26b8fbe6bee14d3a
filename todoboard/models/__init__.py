"""
ORM model package. Import all models here so Alembic autogenerate
can discover every table through the shared Base metadata.
"""
from todoboard.models.user import User  # noqa: F401
from todoboard.models.task import Task  # noqa: F401
from todoboard.models.comment import Comment  # noqa: F401
