"""
SQLAlchemy declarative base shared by all ORM models.

In production the schema is owned by the migration job; `AUTO_CREATE_SCHEMA=1`
(and the test-suite) create it straight from this metadata instead.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# CHECK constraints are declared with table-qualified names already
# (e.g. "collections_status_check"); composite keys spell out every column.
_NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base for PipaPal's ORM models."""

    metadata = MetaData(naming_convention=_NAMING_CONVENTION)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={getattr(self, 'id', None)!r}>"
