from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import generate_id


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
        }
