"""Settlement schedule config repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.models.settlement_schedule_config import SettlementScheduleConfig
from paysettle.schemas.schedule_config import ScheduleConfigUpdate


class ScheduleConfigRepository:
    """Repository for SettlementScheduleConfig model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> list[SettlementScheduleConfig]:
        """Get all schedule configs ordered by key."""
        return (
            self.db.query(SettlementScheduleConfig)
            .order_by(SettlementScheduleConfig.config_key.asc())
            .all()
        )

    def get_enabled(self) -> list[SettlementScheduleConfig]:
        """Get enabled schedule configs ordered by key."""
        return (
            self.db.query(SettlementScheduleConfig)
            .filter(SettlementScheduleConfig.enabled.is_(True))
            .order_by(SettlementScheduleConfig.config_key.asc())
            .all()
        )

    def get_by_id(self, config_id: UUID) -> SettlementScheduleConfig | None:
        """Get a schedule config by ID."""
        return (
            self.db.query(SettlementScheduleConfig)
            .filter(SettlementScheduleConfig.id == config_id)
            .first()
        )

    def get_by_key(self, config_key: str) -> SettlementScheduleConfig | None:
        """Get a schedule config by its unique key."""
        return (
            self.db.query(SettlementScheduleConfig)
            .filter(SettlementScheduleConfig.config_key == config_key)
            .first()
        )

    def create(
        self,
        config_key: str,
        cron_expression: str,
        enabled: bool = True,
        description: str | None = None,
        merchant_id: UUID | None = None,
    ) -> SettlementScheduleConfig:
        """Create a new schedule config."""
        config = SettlementScheduleConfig(
            config_key=config_key,
            cron_expression=cron_expression,
            enabled=enabled,
            description=description,
            merchant_id=merchant_id,
        )
        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)
        return config

    def update(self, config_id: UUID, data: ScheduleConfigUpdate) -> SettlementScheduleConfig | None:
        """Update a schedule config by ID."""
        config = self.get_by_id(config_id)
        if not config:
            return None

        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(config, key, value)

        self.db.commit()
        self.db.refresh(config)
        return config

    def toggle(self, config_id: UUID) -> SettlementScheduleConfig | None:
        """Flip a schedule config's enabled flag."""
        config = self.get_by_id(config_id)
        if not config:
            return None

        config.enabled = not config.enabled  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(config)
        return config
