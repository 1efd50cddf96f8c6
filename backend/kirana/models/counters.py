from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Counter(db.Model):
    """
    Named integer sequence; the sole source of new entity ids.

    WHY: Ids must survive restarts and be unique across concurrent server
    processes, so they live in a keyed table instead of process memory.
    """
    __tablename__ = "counters"

    name = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
