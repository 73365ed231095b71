from datetime import datetime, timezone

from pickpool import db


class MatchPick(db.Model):
    __tablename__ = "match_picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)
    participant_id = db.Column(db.String(64), nullable=False)
    match_id = db.Column(db.String(64), nullable=False)

    # Predicted score
    home_goals = db.Column(db.Integer, nullable=False)
    away_goals = db.Column(db.Integer, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint(
            "pool_id", "participant_id", "match_id", name="unique_participant_match_pick"
        ),
        db.Index("idx_match_pick_pool_match", "pool_id", "match_id"),
    )

    def __repr__(self):
        return f"<MatchPick {self.participant_id} {self.match_id} {self.home_goals}-{self.away_goals}>"

    @property
    def payload(self):
        return {"home_goals": self.home_goals, "away_goals": self.away_goals}

    @staticmethod
    def for_pool(pool_id):
        """Map (participant_id, match_id) -> score payload"""
        return {
            (pick.participant_id, pick.match_id): pick.payload
            for pick in MatchPick.query.filter_by(pool_id=pool_id).all()
        }

    def to_dict(self):
        return {
            "pool_id": self.pool_id,
            "participant_id": self.participant_id,
            "match_id": self.match_id,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class StructuralPick(db.Model):
    __tablename__ = "structural_picks"

    id = db.Column(db.Integer, primary_key=True)

    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)
    participant_id = db.Column(db.String(64), nullable=False)
    phase_id = db.Column(db.String(64), nullable=False)

    # {"groups": {...}, "global_qualifiers": [...]} or {"matches": {...}}
    payload = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "pool_id", "participant_id", "phase_id", name="unique_participant_phase_pick"
        ),
    )

    def __repr__(self):
        return f"<StructuralPick {self.participant_id} {self.phase_id}>"

    @staticmethod
    def for_pool(pool_id):
        """Map (participant_id, phase_id) -> payload"""
        return {
            (pick.participant_id, pick.phase_id): pick.payload
            for pick in StructuralPick.query.filter_by(pool_id=pool_id).all()
        }

    def to_dict(self):
        return {
            "pool_id": self.pool_id,
            "participant_id": self.participant_id,
            "phase_id": self.phase_id,
            "payload": self.payload,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
