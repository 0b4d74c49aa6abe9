from enum import Enum

from ..extensions import db
from .base import EntityKind, TimestampMixin, entity


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


@entity(EntityKind.INVENTORY)
class Inventory(TimestampMixin, db.Model):
    """Quantity on hand for one colorway + base. This table is the system of record."""

    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("account_id", "colorway_id", "base_id", name="uq_inventories_account_colorway_base"),
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    colorway_id = db.Column(db.Integer, db.ForeignKey("colorways.id"), nullable=False, index=True)
    base_id = db.Column(db.Integer, db.ForeignKey("bases.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_synced_at = db.Column(db.DateTime)
    sync_status = db.Column(db.String(20))

    colorway = db.relationship("Colorway", back_populates="inventories")
    base = db.relationship("Base")

    def mark(self, status: SyncStatus, at=None):
        self.sync_status = status.value
        if status is SyncStatus.SYNCED:
            # stamp both clocks so the sync write itself is not mistaken for a local edit
            self.last_synced_at = at
            self.updated_at = at

    @classmethod
    def for_colorway(cls, colorway):
        from .catalog import Base

        return (
            cls.query.join(Base, cls.base_id == Base.id)
            .filter(cls.account_id == colorway.account_id, cls.colorway_id == colorway.id)
            .order_by(Base.id)
            .all()
        )

    @classmethod
    def ensure(cls, account_id: int, colorway_id: int, base_id: int, quantity: int = 0):
        row = cls.query.filter_by(account_id=account_id, colorway_id=colorway_id, base_id=base_id).first()
        if row is None:
            row = cls(account_id=account_id, colorway_id=colorway_id, base_id=base_id, quantity=quantity)
            db.session.add(row)
            db.session.flush()
        return row
