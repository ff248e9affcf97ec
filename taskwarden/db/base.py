"""Declarative base shared by the durable store tables."""

from sqlalchemy import MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
}


class Base(DeclarativeBase):
    """Base class for taskwarden ORM records.

    Every row belongs to exactly one owner, the isolation boundary for tasks,
    executions and approvals alike.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    owner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        doc="Owning user; reads are scoped by it.",
    )
