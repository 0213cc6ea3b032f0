from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Patient(db.Model):
    """
    Patient identity record.

    patient_code is human-readable and allocated from the per-branch monthly
    sequence. phone is globally unique when present. Patients are never deleted.
    """
    __tablename__ = "patients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    patient_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "patient_code": self.patient_code,
            "full_name": self.full_name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }

class Visit(db.Model):
    """
    One clinical encounter. Owns its charges and payments.

    STATUS: OPEN -> COMPLETED, or CANCELLED / NO_SHOW. Money cannot be
    collected or refunded on CANCELLED / NO_SHOW visits.
    """
    __tablename__ = "visits"
    __table_args__ = (
        db.Index("ix_visits_branch_date", "branch_id", "visit_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    visit_date = db.Column(db.Date, nullable=False)
    referral_id = db.Column(db.String(64), nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, COMPLETED, CANCELLED, NO_SHOW

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    patient = db.relationship("Patient", backref=db.backref("visits", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "org_id": self.org_id,
            "branch_id": self.branch_id,
            "doctor_id": self.doctor_id,
            "visit_date": self.visit_date.isoformat() if self.visit_date else None,
            "referral_id": self.referral_id,
            "remarks": self.remarks,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
