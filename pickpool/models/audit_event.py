from datetime import datetime, timezone

from pickpool import db

RESULT_PUBLISHED = "RESULT_PUBLISHED"
RESULT_CORRECTED = "RESULT_CORRECTED"
SCORES_RECOMPUTED = "SCORES_RECOMPUTED"
PHASE_LOCKED = "PHASE_LOCKED"
PHASE_UNLOCKED = "PHASE_UNLOCKED"


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(db.Integer, primary_key=True)

    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)
    actor_id = db.Column(db.String(64))  # None for automated sources

    # Event type and details
    event_type = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(500), nullable=False)

    # Related match/version for result events
    match_id = db.Column(db.String(64))
    version = db.Column(db.Integer)
    reason = db.Column(db.String(500))

    # Additional context data (JSON)
    event_metadata = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index("idx_audit_pool", "pool_id"),
        db.Index("idx_audit_pool_match", "pool_id", "match_id"),
        db.Index("idx_audit_type", "event_type"),
        db.Index("idx_audit_created", "created_at"),
    )

    def __repr__(self):
        return f"<AuditEvent {self.event_type} pool_id={self.pool_id} match={self.match_id}>"

    @staticmethod
    def log_event(
        pool_id,
        event_type,
        description,
        actor_id=None,
        match_id=None,
        version=None,
        reason=None,
        event_metadata=None,
    ):
        """Add an audit event to the current session (committed by the caller)"""
        event = AuditEvent(
            pool_id=pool_id,
            actor_id=actor_id,
            event_type=event_type,
            description=description,
            match_id=match_id,
            version=version,
            reason=reason,
            event_metadata=event_metadata or {},
        )

        db.session.add(event)
        return event

    @staticmethod
    def log_result_version(pool_id, version_row, match_id, actor_id=None):
        """RESULT_PUBLISHED for version 1, RESULT_CORRECTED afterwards"""
        if version_row.version_number == 1:
            event_type = RESULT_PUBLISHED
            description = (
                f"Published {match_id}: {version_row.home_goals}-{version_row.away_goals}"
            )
        else:
            event_type = RESULT_CORRECTED
            description = (
                f"Corrected {match_id} to {version_row.home_goals}-{version_row.away_goals} "
                f"(version {version_row.version_number}): {version_row.reason}"
            )

        if version_row.home_penalties is not None:
            description += f" ({version_row.home_penalties}-{version_row.away_penalties} pens)"

        return AuditEvent.log_event(
            pool_id=pool_id,
            event_type=event_type,
            description=description,
            actor_id=actor_id,
            match_id=match_id,
            version=version_row.version_number,
            reason=version_row.reason,
            event_metadata={
                "home_goals": version_row.home_goals,
                "away_goals": version_row.away_goals,
                "home_penalties": version_row.home_penalties,
                "away_penalties": version_row.away_penalties,
                "source": version_row.source,
            },
        )

    @staticmethod
    def history_for_match(pool_id, match_id):
        return (
            AuditEvent.query.filter_by(pool_id=pool_id, match_id=match_id)
            .order_by(AuditEvent.created_at, AuditEvent.id)
            .all()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "pool_id": self.pool_id,
            "actor_id": self.actor_id,
            "event_type": self.event_type,
            "description": self.description,
            "match_id": self.match_id,
            "version": self.version,
            "reason": self.reason,
            "event_metadata": self.event_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
