from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoreSetting(db.Model):
    """
    Store-wide key/value setting (JSON value).

    Known keys: "milk_price", "free_gift".
    """
    __tablename__ = "store_settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
