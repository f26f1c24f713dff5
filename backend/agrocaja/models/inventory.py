from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def quantity_out(value):
    """Numeric columns come back as Decimal; JSON gets a float."""
    return float(value) if value is not None else None


class InventoryItem(db.Model):
    """
    Farm supply stock (fertilizer, seed, fuel, agrochemicals...).

    SCOPING: Items belong to one (owner_id, farm) pair.

    PRICING: unit_price_cents is the CURRENT price. Expenses that consume an
    item are priced against it when they are settled, not when they are
    recorded, so a price change between the two is reflected in the
    settlement. Settled figures are frozen in settlement snapshot lines.

    STOCK: Decremented when an expense consumes the item and restored when an
    unsettled expense is deleted. Never negative.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_owner_farm", "owner_id", "farm"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_inventory_items_stock_nonneg"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_inventory_items_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm = db.Column(db.String(120), nullable=False)

    name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(64), nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock_quantity = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    volume_liters = db.Column(db.Numeric(12, 3), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} farm={self.farm!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "farm": self.farm,
            "name": self.name,
            "category": self.category,
            "unit_price_cents": self.unit_price_cents,
            "stock_quantity": quantity_out(self.stock_quantity),
            "volume_liters": quantity_out(self.volume_liters),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
