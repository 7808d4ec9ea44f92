from uuid import UUID, uuid4

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, MappedAsDataclass, declarative_mixin, mapped_column

CONSTRAINT_NAMES = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(MappedAsDataclass, DeclarativeBase):
    metadata = MetaData(naming_convention=CONSTRAINT_NAMES)
    __sa_dataclass_kwargs__ = {"kw_only": True, "repr": False, "eq": True}


@declarative_mixin
class UUIDKeyMixin(MappedAsDataclass):
    """UUID primary key assigned in Python, so records know their id before flush."""

    id: Mapped[UUID] = mapped_column(primary_key=True, default_factory=uuid4, init=False)
