from __future__ import annotations

import uuid
from datetime import datetime, timezone

from .extensions import db


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> str:
    return str(uuid.uuid4())


class Scan(db.Model):
    __tablename__ = "scan"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, index=True, default=new_uuid)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Targets: JSON arrays of strings
    urls = db.Column(db.JSON, nullable=True)
    ip_addresses = db.Column(db.JSON, nullable=True)

    send_notification = db.Column(db.Boolean, nullable=False, default=False)
    notification_email = db.Column(db.String(255), nullable=True)

    # ── Schedule ────────────────────────────────────────────────────
    # schedule_type: immediate, once, recurring
    schedule_type = db.Column(db.String(20), nullable=False, default="immediate", index=True)
    scheduled_at = db.Column(db.DateTime, nullable=True)
    cron_expression = db.Column(db.String(100), nullable=True)
    last_run_at = db.Column(db.DateTime, nullable=True)

    # ── Run state ───────────────────────────────────────────────────
    # status: pending, running, completed, failed
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    risk_grade = db.Column(db.String(1), nullable=True)
    summary = db.Column(db.JSON, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    updated_at = db.Column(db.DateTime, nullable=False, default=now_utc, onupdate=now_utc)

    results = db.relationship(
        "ScanResult",
        back_populates="scan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ScanResult.id",
    )


class ScanResult(db.Model):
    __tablename__ = "scan_result"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    scan_id = db.Column(
        db.Integer,
        db.ForeignKey("scan.id", ondelete="CASCADE"),
        nullable=False,
    )

    target = db.Column(db.String(500), nullable=False)
    target_type = db.Column(db.String(10), nullable=False)           # url, ip

    check_type = db.Column(db.String(50), nullable=False)            # security_header, port_scan, ...
    check_name = db.Column(db.String(255), nullable=True)
    passed = db.Column(db.Boolean, nullable=False, default=False)
    severity = db.Column(db.String(20), nullable=True)               # low, medium, high, critical
    risk_level = db.Column(db.String(20), nullable=True)             # none, low, medium, high
    message = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)

    check_data = db.Column(db.JSON, nullable=True)                   # full check record
    recommendations = db.Column(db.JSON, nullable=True)
    vulnerabilities = db.Column(db.JSON, nullable=True)

    scanned_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)

    __table_args__ = (
        db.Index("ix_scan_result_scan_target", "scan_id", "target"),
        db.Index("ix_scan_result_type_passed", "check_type", "passed"),
        db.Index("ix_scan_result_severity", "severity"),
        db.Index("ix_scan_result_scanned_at", "scanned_at"),
    )

    scan = db.relationship("Scan", back_populates="results")

    def has_vulnerabilities(self) -> bool:
        return bool(self.vulnerabilities)

    def vulnerability_count(self) -> int:
        return len(self.vulnerabilities) if isinstance(self.vulnerabilities, list) else 0

    def is_high_risk(self) -> bool:
        return (
            self.severity in ("high", "critical")
            or self.risk_level == "high"
            or self.has_vulnerabilities()
        )

    def risk_label(self) -> str:
        """Severity for display: explicit severity, risk level, then inferred."""
        if self.severity:
            return self.severity
        if self.risk_level:
            return self.risk_level
        if self.has_vulnerabilities():
            return "high"
        return "low" if self.passed else "medium"
