from datetime import datetime, timedelta, timezone

from pickpool import db
from pickpool.engine.fixtures import Fixture as FixtureValue


class Fixture(db.Model):
    __tablename__ = "fixtures"

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)

    # Match identification
    match_id = db.Column(db.String(64), nullable=False)
    phase_id = db.Column(db.String(64), nullable=False)
    group_id = db.Column(db.String(32))  # None for knockout matches

    # Teams (None until a knockout slot is resolved)
    home_team_id = db.Column(db.String(64))
    away_team_id = db.Column(db.String(64))

    # Placeholder sources, e.g. "group:A:1", "winner:QF1"
    home_source = db.Column(db.String(64))
    away_source = db.Column(db.String(64))

    kickoff_utc = db.Column(db.DateTime)

    # External ID for the result feed
    external_id = db.Column(db.String(50), index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("pool_id", "match_id", name="unique_pool_match"),
        db.Index("idx_fixture_pool_phase", "pool_id", "phase_id"),
        db.Index("idx_fixture_kickoff", "kickoff_utc"),
    )

    def __repr__(self):
        return f'<Fixture {self.match_id} {self.home_team_id or "TBD"} vs {self.away_team_id or "TBD"}>'

    @property
    def kickoff(self):
        """Kickoff as an aware UTC datetime"""
        kickoff = self.kickoff_utc
        # If kickoff is timezone-naive, assume it's in UTC
        if kickoff and kickoff.tzinfo is None:
            kickoff = kickoff.replace(tzinfo=timezone.utc)
        return kickoff

    def pick_deadline(self, minutes_before):
        """Last moment picks are accepted (None when kickoff is unknown)"""
        if not self.kickoff:
            return None
        return self.kickoff - timedelta(minutes=minutes_before or 0)

    def is_locked(self, minutes_before, now=None):
        deadline = self.pick_deadline(minutes_before)
        if deadline is None:
            return False
        return (now or datetime.now(timezone.utc)) >= deadline

    def assign_slot(self, side, team_id):
        if side == "home":
            self.home_team_id = team_id
        else:
            self.away_team_id = team_id

    def to_value(self):
        """Immutable engine Fixture"""
        return FixtureValue(
            match_id=self.match_id,
            phase_id=self.phase_id,
            home_team_id=self.home_team_id,
            away_team_id=self.away_team_id,
            group_id=self.group_id,
            home_source=self.home_source,
            away_source=self.away_source,
            kickoff_utc=self.kickoff,
        )

    @staticmethod
    def get_for_pool(pool_id):
        return Fixture.query.filter_by(pool_id=pool_id).order_by(Fixture.match_id).all()

    @staticmethod
    def get_by_match(pool_id, match_id):
        return Fixture.query.filter_by(pool_id=pool_id, match_id=match_id).first()

    def to_dict(self):
        return self.to_value().to_dict()
