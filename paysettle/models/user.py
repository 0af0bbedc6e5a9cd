"""User model - read-only projection used for approval authorization."""

from enum import Enum

from sqlalchemy import Column, DateTime, String

from paysettle.core.database import Base
from paysettle.models.shared import UUIDType, generate_uuid, utc_now


class UserRole(str, Enum):
    """User role enum."""

    ADMIN = "ADMIN"
    USER = "USER"


class User(Base):
    """User model."""

    __tablename__ = "users"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
