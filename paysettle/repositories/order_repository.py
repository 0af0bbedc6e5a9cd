"""Order repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.models.order import Order


class OrderRepository:
    """Repository for Order model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, order_id: UUID, for_update: bool = False) -> Order | None:
        """Get an order by ID, optionally locking the row."""
        query = self.db.query(Order).filter(Order.id == order_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_user_id(self, user_id: UUID, skip: int = 0, limit: int = 100) -> list[Order]:
        """Get a user's orders, newest first."""
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def add(self, order: Order) -> Order:
        """Stage an order in the current transaction."""
        self.db.add(order)
        self.db.flush()
        return order
