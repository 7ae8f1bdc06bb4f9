"""
Enforcement record models (cases and notices).

Only the columns the scraping feed supplies, plus bookkeeping timestamps.
The natural key is (agency, regulator_id): the regulator-assigned id is
unique within one agency.
"""
from datetime import datetime

from models.database import db


class EnforcementCase(db.Model):
    """Court case / prosecution published by a regulator."""

    __tablename__ = "enforcement_cases"

    id = db.Column(db.Integer, primary_key=True)
    agency = db.Column(db.String(50), nullable=False, index=True)
    regulator_id = db.Column(db.String(100), nullable=False)

    offender_name = db.Column(db.String(255))
    offence_action_type = db.Column(db.String(50))  # court_case, caution
    offence_action_date = db.Column(db.Date, index=True)
    offence_hearing_date = db.Column(db.Date)
    offence_result = db.Column(db.Text)
    offence_fine = db.Column(db.Numeric(15, 2))
    offence_costs = db.Column(db.Numeric(15, 2))
    offence_breaches = db.Column(db.Text)
    related_cases = db.Column(db.Text)
    regulator_url = db.Column(db.Text)

    # Bookkeeping (never compared)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_synced_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("agency", "regulator_id", name="uq_enforcement_cases_agency_regulator_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agency": self.agency,
            "regulator_id": self.regulator_id,
            "offender_name": self.offender_name,
            "offence_action_type": self.offence_action_type,
            "offence_action_date": self.offence_action_date.isoformat() if self.offence_action_date else None,
            "offence_hearing_date": self.offence_hearing_date.isoformat() if self.offence_hearing_date else None,
            "offence_result": self.offence_result,
            "offence_fine": float(self.offence_fine) if self.offence_fine is not None else None,
            "offence_costs": float(self.offence_costs) if self.offence_costs is not None else None,
            "offence_breaches": self.offence_breaches,
            "related_cases": self.related_cases,
            "regulator_url": self.regulator_url,
        }

    def __repr__(self):
        return f"<EnforcementCase {self.agency}:{self.regulator_id}>"


class EnforcementNotice(db.Model):
    """Enforcement notice (improvement, prohibition, etc.)."""

    __tablename__ = "enforcement_notices"

    id = db.Column(db.Integer, primary_key=True)
    agency = db.Column(db.String(50), nullable=False, index=True)
    regulator_id = db.Column(db.String(100), nullable=False)

    offender_name = db.Column(db.String(255))
    notice_type = db.Column(db.String(100))
    notice_date = db.Column(db.Date, index=True)
    operative_date = db.Column(db.Date)
    compliance_date = db.Column(db.Date)
    notice_body = db.Column(db.Text)
    offence_breaches = db.Column(db.Text)
    regulator_url = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_synced_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("agency", "regulator_id", name="uq_enforcement_notices_agency_regulator_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agency": self.agency,
            "regulator_id": self.regulator_id,
            "offender_name": self.offender_name,
            "notice_type": self.notice_type,
            "notice_date": self.notice_date.isoformat() if self.notice_date else None,
            "operative_date": self.operative_date.isoformat() if self.operative_date else None,
            "compliance_date": self.compliance_date.isoformat() if self.compliance_date else None,
            "notice_body": self.notice_body,
            "offence_breaches": self.offence_breaches,
            "regulator_url": self.regulator_url,
        }

    def __repr__(self):
        return f"<EnforcementNotice {self.agency}:{self.regulator_id}>"
