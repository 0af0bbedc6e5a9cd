"""User repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.models.user import User, UserRole


class UserRepository:
    """Repository for User model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: UUID) -> User | None:
        """Get a user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()

    def create(self, email: str, role: UserRole = UserRole.USER) -> User:
        """Create a new user."""
        user = User(email=email, role=role.value)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user
