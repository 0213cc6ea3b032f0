from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class QueueEntry(db.Model):
    """
    Daily walk-in queue slot for a visit.

    One entry per visit per day; token_no is allocated from the
    (org, branch, date) sequence so tokens are unique within a branch-day.
    """
    __tablename__ = "queue_entries"
    __table_args__ = (
        db.UniqueConstraint("visit_id", "queue_date", name="uq_queue_entries_visit_date"),
        db.UniqueConstraint("branch_id", "queue_date", "token_no", name="uq_queue_entries_branch_date_token"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    visit_id = db.Column(db.Integer, db.ForeignKey("visits.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    queue_date = db.Column(db.Date, nullable=False)
    token_no = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="WAITING")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    visit = db.relationship("Visit", backref=db.backref("queue_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "visit_id": self.visit_id,
            "branch_id": self.branch_id,
            "queue_date": self.queue_date.isoformat() if self.queue_date else None,
            "token_no": self.token_no,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
