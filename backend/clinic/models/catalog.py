from __future__ import annotations

from ..extensions import db

class ServiceLine(db.Model):
    """
    Billable catalog entry (CONSULTATION, SCAN, LAB, ...).

    A visit carries at most one charge per service line.
    """
    __tablename__ = "service_lines"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_service_lines_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
        }

class ServiceRate(db.Model):
    """Branch-specific gross rate for a service line (minor units)."""
    __tablename__ = "service_rates"
    __table_args__ = (
        db.UniqueConstraint("service_line_id", "branch_id", name="uq_service_rates_line_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    service_line_id = db.Column(db.Integer, db.ForeignKey("service_lines.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    rate_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    service_line = db.relationship("ServiceLine", backref=db.backref("rates", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_line_id": self.service_line_id,
            "branch_id": self.branch_id,
            "rate_cents": self.rate_cents,
            "is_active": self.is_active,
        }

class PaymentMode(db.Model):
    """Tender a payment or refund moves through (CASH, UPI, CARD, ...)."""
    __tablename__ = "payment_modes"

    code = db.Column(db.String(32), primary_key=True)
    display_name = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
