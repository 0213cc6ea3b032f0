from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Charge(db.Model):
    """
    Visit charge: one row per (visit, service line).

    INVARIANTS:
    - 0 <= discount_cents <= gross_cents
    - net_cents == gross_cents - discount_cents
    - Only calculator-derived updates; each one logged as a ChargeAdjustment.
    """
    __tablename__ = "charges"
    __table_args__ = (
        db.UniqueConstraint("visit_id", "service_line_id", name="uq_charges_visit_service_line"),
        db.CheckConstraint("discount_cents >= 0 AND discount_cents <= gross_cents", name="ck_charges_discount_range"),
        db.CheckConstraint("net_cents = gross_cents - discount_cents", name="ck_charges_net"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    visit_id = db.Column(db.Integer, db.ForeignKey("visits.id"), nullable=False, index=True)
    service_line_id = db.Column(db.Integer, db.ForeignKey("service_lines.id"), nullable=False)

    gross_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    visit = db.relationship("Visit", backref=db.backref("charges", lazy=True))
    service_line = db.relationship("ServiceLine")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "visit_id": self.visit_id,
            "service_line_id": self.service_line_id,
            "gross_cents": self.gross_cents,
            "discount_cents": self.discount_cents,
            "net_cents": self.net_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }

class ChargeAdjustment(db.Model):
    """
    Append-only audit of a discount/waiver change on a charge.

    Snapshot of old gross/discount/net, the new discount/net, and the paid
    total and refund due at the moment of the change. Never updated.
    """
    __tablename__ = "charge_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    charge_id = db.Column(db.Integer, db.ForeignKey("charges.id"), nullable=False, index=True)
    visit_id = db.Column(db.Integer, db.ForeignKey("visits.id"), nullable=False, index=True)
    service_line_id = db.Column(db.Integer, db.ForeignKey("service_lines.id"), nullable=False)

    old_gross_cents = db.Column(db.Integer, nullable=False)
    old_discount_cents = db.Column(db.Integer, nullable=False)
    old_net_cents = db.Column(db.Integer, nullable=False)
    new_discount_cents = db.Column(db.Integer, nullable=False)
    new_net_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_due_cents = db.Column(db.Integer, nullable=False, default=0)

    reason = db.Column(db.String(255), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)
    authorized_by_doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    charge = db.relationship("Charge", backref=db.backref("adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "charge_id": self.charge_id,
            "visit_id": self.visit_id,
            "service_line_id": self.service_line_id,
            "old_gross_cents": self.old_gross_cents,
            "old_discount_cents": self.old_discount_cents,
            "old_net_cents": self.old_net_cents,
            "new_discount_cents": self.new_discount_cents,
            "new_net_cents": self.new_net_cents,
            "paid_cents": self.paid_cents,
            "refund_due_cents": self.refund_due_cents,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "authorized_by_doctor_id": self.authorized_by_doctor_id,
            "created_at": to_utc_z(self.created_at),
        }

class Payment(db.Model):
    """
    Money movement against a visit's service line.

    amount_cents is always positive; direction says which way it moved.
    Immutable after creation except the one-time PENDING -> ACCEPTED/WAIVED
    settlement.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_visit_service_line", "visit_id", "service_line_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    visit_id = db.Column(db.Integer, db.ForeignKey("visits.id"), nullable=False)
    service_line_id = db.Column(db.Integer, db.ForeignKey("service_lines.id"), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    mode = db.Column(db.String(32), db.ForeignKey("payment_modes.code"), nullable=False)
    direction = db.Column(db.String(16), nullable=False, default="PAYMENT")  # PAYMENT, REFUND
    status = db.Column(db.String(16), nullable=False, default="ACCEPTED", index=True)  # ACCEPTED, PENDING, WAIVED
    note = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    settled_by = db.Column(db.Integer, nullable=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    visit = db.relationship("Visit", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "visit_id": self.visit_id,
            "service_line_id": self.service_line_id,
            "amount_cents": self.amount_cents,
            "mode": self.mode,
            "direction": self.direction,
            "status": self.status,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "settled_by": self.settled_by,
            "settled_at": to_utc_z(self.settled_at),
        }

class PaymentAllocation(db.Model):
    """
    Links a payment to the charge it settles.

    Signed: PAYMENT allocations are positive, REFUND allocations negative, so
    the paid total of a charge is a plain SUM over accepted payments.
    """
    __tablename__ = "payment_allocations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    charge_id = db.Column(db.Integer, db.ForeignKey("charges.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    payment = db.relationship("Payment", backref=db.backref("allocations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "charge_id": self.charge_id,
            "amount_cents": self.amount_cents,
        }
