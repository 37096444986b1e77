from enum import Enum

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Declarative base for engagement models; tables default to the lowercased class name."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Persist enum values (not member names) in database enum types."""

    return [member.value for member in enum_cls]
