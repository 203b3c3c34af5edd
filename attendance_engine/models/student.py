"""Student model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from attendance_engine.models.base import Base, TimestampMixin


class StudentEntity(Base, TimestampMixin):
    """A student attendance is recorded for."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
