from datetime import datetime, timezone

from pickpool import db
from pickpool.engine.results import MatchResult, ResultHistory


class MatchResultHeader(db.Model):
    """One row per (pool, match); the versions hang off it and are append-only"""

    __tablename__ = "match_results"

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)
    match_id = db.Column(db.String(64), nullable=False)

    # Version number of the latest MatchResultVersion
    current_version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    versions = db.relationship(
        "MatchResultVersion",
        backref="header",
        lazy="select",
        order_by="MatchResultVersion.version_number",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("pool_id", "match_id", name="unique_pool_match_result"),
    )

    def __repr__(self):
        return f"<MatchResultHeader pool_id={self.pool_id} match={self.match_id} v{self.current_version}>"

    def history(self):
        """Pure ResultHistory over every stored version"""
        return ResultHistory(self.match_id, [v.to_value(self.match_id) for v in self.versions])

    @property
    def latest(self):
        return self.versions[-1] if self.versions else None

    @staticmethod
    def get(pool_id, match_id):
        return MatchResultHeader.query.filter_by(pool_id=pool_id, match_id=match_id).first()

    @staticmethod
    def latest_results(pool_id):
        """Map match id -> latest MatchResult value for a pool"""
        results = {}
        headers = MatchResultHeader.query.filter_by(pool_id=pool_id).all()
        for header in headers:
            latest = header.latest
            if latest is not None:
                results[header.match_id] = latest.to_value(header.match_id)
        return results


class MatchResultVersion(db.Model):
    __tablename__ = "match_result_versions"

    id = db.Column(db.Integer, primary_key=True)
    result_id = db.Column(db.Integer, db.ForeignKey("match_results.id"), nullable=False)
    version_number = db.Column(db.Integer, nullable=False)

    # Scores
    home_goals = db.Column(db.Integer, nullable=False)
    away_goals = db.Column(db.Integer, nullable=False)
    home_penalties = db.Column(db.Integer)
    away_penalties = db.Column(db.Integer)

    # Correction metadata
    reason = db.Column(db.String(500))
    source = db.Column(db.String(20), nullable=False, default="MANUAL")  # MANUAL, API
    created_by = db.Column(db.String(64))

    published_at_utc = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("result_id", "version_number", name="unique_result_version"),
        db.CheckConstraint("home_goals >= 0 AND away_goals >= 0", name="non_negative_goals"),
    )

    def __repr__(self):
        return f"<MatchResultVersion result_id={self.result_id} v{self.version_number}>"

    def to_value(self, match_id=None):
        """Immutable engine MatchResult"""
        published = self.published_at_utc
        if published and published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)
        return MatchResult(
            match_id=match_id or self.header.match_id,
            home_goals=self.home_goals,
            away_goals=self.away_goals,
            home_penalties=self.home_penalties,
            away_penalties=self.away_penalties,
            version=self.version_number,
            reason=self.reason,
            published_at_utc=published,
        )

    def to_dict(self):
        return {
            "version": self.version_number,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "home_penalties": self.home_penalties,
            "away_penalties": self.away_penalties,
            "reason": self.reason,
            "source": self.source,
            "created_by": self.created_by,
            "published_at_utc": (
                self.published_at_utc.isoformat() if self.published_at_utc else None
            ),
        }
