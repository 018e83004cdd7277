from datetime import datetime

from sqlalchemy import Text
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from clinic_emr.models.types import UTCDateTime


class Base(DeclarativeBase):
    pass


class CreatedAtMixin:
    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(UTCDateTime(), nullable=False)


class SoftDeleteMixin:
    @declared_attr
    def deleted_at(cls) -> Mapped[datetime | None]:
        return mapped_column(UTCDateTime(), nullable=True, index=True)

    @declared_attr
    def delete_reason(cls) -> Mapped[str | None]:
        return mapped_column(Text, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
