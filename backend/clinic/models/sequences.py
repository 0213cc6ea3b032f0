from __future__ import annotations

from ..extensions import db

class SequenceCounter(db.Model):
    """
    Atomic per-scope sequence (patient codes, daily queue tokens).

    next_value is the value the next allocation returns. Monotonic: never
    decremented, never reused. The scope key format belongs to the caller.
    """
    __tablename__ = "sequence_counters"

    scope_key = db.Column(db.String(128), primary_key=True)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "scope_key": self.scope_key,
            "next_value": self.next_value,
        }
