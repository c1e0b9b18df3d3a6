from __future__ import annotations

from ..extensions import db
from kosbook.time_utils import to_utc_z


LEASE_DAILY = "DAILY"
LEASE_WEEKLY = "WEEKLY"
LEASE_MONTHLY = "MONTHLY"
LEASE_QUARTERLY = "QUARTERLY"
LEASE_YEARLY = "YEARLY"

VALID_LEASE_TYPES = {LEASE_DAILY, LEASE_WEEKLY, LEASE_MONTHLY, LEASE_QUARTERLY, LEASE_YEARLY}

DEPOSIT_FIXED = "FIXED"
DEPOSIT_PERCENTAGE = "PERCENTAGE"


class Property(db.Model):
    """
    A kos (boarding house) owned by one AdminKos.

    available_rooms is a denormalized count of rooms with is_available=True;
    it is recomputed whenever a booking locks or releases a room.
    """
    __tablename__ = "properties"
    __table_args__ = (
        db.Index("ix_properties_owner_id", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(500), nullable=True)

    total_rooms = db.Column(db.Integer, nullable=False, default=0)
    available_rooms = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    owner = db.relationship("User", backref=db.backref("properties", lazy=True))

    def __repr__(self) -> str:
        return f"<Property id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "address": self.address,
            "total_rooms": self.total_rooms,
            "available_rooms": self.available_rooms,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Room(db.Model):
    """
    Rentable room. Prices are whole rupiah.

    WHY is_available: a room is held exclusively by whichever active booking
    locked it; the flag is cleared at booking creation and restored on
    expiry, cancellation or completion.
    """
    __tablename__ = "rooms"
    __table_args__ = (
        db.UniqueConstraint("property_id", "room_number", name="uq_rooms_property_number"),
        db.Index("ix_rooms_property_available", "property_id", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey("properties.id"), nullable=False, index=True)
    room_number = db.Column(db.String(32), nullable=False)
    room_type = db.Column(db.String(64), nullable=False, default="Standard")

    is_available = db.Column(db.Boolean, nullable=False, default=True)

    monthly_price = db.Column(db.Integer, nullable=False)
    daily_price = db.Column(db.Integer, nullable=True)
    weekly_price = db.Column(db.Integer, nullable=True)
    quarterly_price = db.Column(db.Integer, nullable=True)
    yearly_price = db.Column(db.Integer, nullable=True)

    deposit_required = db.Column(db.Boolean, nullable=False, default=False)
    deposit_type = db.Column(db.String(16), nullable=True)  # FIXED | PERCENTAGE
    deposit_value = db.Column(db.Integer, nullable=True)  # rupiah or percent

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    property = db.relationship("Property", backref=db.backref("rooms", lazy=True))

    def __repr__(self) -> str:
        return f"<Room id={self.id} number={self.room_number!r} available={self.is_available}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "room_number": self.room_number,
            "room_type": self.room_type,
            "is_available": self.is_available,
            "monthly_price": self.monthly_price,
            "daily_price": self.daily_price,
            "weekly_price": self.weekly_price,
            "quarterly_price": self.quarterly_price,
            "yearly_price": self.yearly_price,
            "deposit_required": self.deposit_required,
            "deposit_type": self.deposit_type,
            "deposit_value": self.deposit_value,
        }
