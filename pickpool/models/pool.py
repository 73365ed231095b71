from dataclasses import replace
from datetime import datetime, timezone

from pickpool import db
from pickpool.engine.pick_config import parse_pool_config, validate_pool_config
from pickpool.engine.errors import ConfigInconsistent
from pickpool.models.fixture import Fixture
from pickpool.models.match_result import MatchResultHeader


class Pool(db.Model):
    __tablename__ = "pools"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    # Scoring configuration: list of stored phase dicts
    pick_types_config = db.Column(db.JSON, nullable=False, default=list)
    deadline_minutes_before_kickoff = db.Column(db.Integer, nullable=False, default=5)
    auto_advance_enabled = db.Column(db.Boolean, default=True)

    # Phase ids an admin has locked ahead of their first deadline
    locked_phases = db.Column(db.JSON, nullable=False, default=list)

    # Revision stamps feeding the scores fingerprint
    config_revision = db.Column(db.Integer, nullable=False, default=1)
    picks_revision = db.Column(db.Integer, nullable=False, default=0)
    fixtures_revision = db.Column(db.Integer, nullable=False, default=0)

    # Fingerprint of the last fully applied recomputation
    scores_fingerprint = db.Column(db.String(40))
    scores_applied_at = db.Column(db.DateTime)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    fixtures = db.relationship(
        "Fixture", backref="pool", lazy="dynamic", cascade="all, delete-orphan"
    )
    participants = db.relationship(
        "PoolParticipant", backref="pool", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (db.Index("idx_pool_active", "is_active"),)

    def __repr__(self):
        return f"<Pool {self.name}>"

    @property
    def phases(self):
        """Parsed PhaseConfig objects keyed by phase id"""
        return parse_pool_config(self.pick_types_config)

    def get_phase(self, phase_id):
        phase = self.phases.get(phase_id)
        if phase is None:
            raise ConfigInconsistent(f"Pool {self.id} has no phase {phase_id}", phase_id=phase_id)
        return phase

    def started_phase_ids(self, now=None):
        """
        Phases whose scoring rules are frozen.

        A phase has started once any of its fixtures is past its pick deadline
        or has a published result. Admin-locked phases count as started.
        """
        started = set(self.locked_phases or [])
        published = {
            header.match_id
            for header in MatchResultHeader.query.filter(
                MatchResultHeader.pool_id == self.id, MatchResultHeader.current_version > 0
            )
        }
        for fixture in Fixture.get_for_pool(self.id):
            if fixture.match_id in published or fixture.is_locked(
                self.deadline_minutes_before_kickoff, now
            ):
                started.add(fixture.phase_id)
        return started

    def update_config(self, raw_phases, now=None):
        """Replace the scoring configuration; raises ConfigInconsistent when invalid"""
        errors, warnings = validate_pool_config(raw_phases)
        if errors:
            raise ConfigInconsistent("Invalid pool configuration", errors=errors)

        current = self.phases
        proposed = parse_pool_config(raw_phases)
        for phase_id in sorted(self.started_phase_ids(now) & set(current)):
            new_phase = proposed.get(phase_id)
            if new_phase is not None:
                # Renaming a started phase is allowed
                new_phase = replace(new_phase, phase_name=current[phase_id].phase_name)
            if new_phase != current[phase_id]:
                raise ConfigInconsistent(
                    "Invalid pool configuration",
                    phase_id=phase_id,
                    errors=[
                        {
                            "field": phase_id,
                            "message": f"Phase {phase_id} has started; its scoring rules can no longer change",
                        }
                    ],
                )

        self.pick_types_config = list(raw_phases)
        self.config_revision = (self.config_revision or 0) + 1
        return warnings

    def set_phase_lock(self, phase_id, locked):
        """Lock or unlock a phase's rules ahead of its first deadline"""
        self.get_phase(phase_id)
        current = list(self.locked_phases or [])
        if locked and phase_id not in current:
            current.append(phase_id)
        elif not locked:
            current = [p for p in current if p != phase_id]
        # Reassign so the JSON column is flagged dirty
        self.locked_phases = current
        return current

    def bump_picks_revision(self):
        self.picks_revision = (self.picks_revision or 0) + 1

    def bump_fixtures_revision(self):
        self.fixtures_revision = (self.fixtures_revision or 0) + 1

    def participant_ids(self):
        return [p.participant_id for p in self.participants.filter_by(is_active=True)]

    def mark_scores_applied(self, fingerprint):
        self.scores_fingerprint = fingerprint
        self.scores_applied_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "phases": self.pick_types_config,
            "locked_phases": self.locked_phases or [],
            "deadline_minutes_before_kickoff": self.deadline_minutes_before_kickoff,
            "auto_advance_enabled": self.auto_advance_enabled,
            "scores_fingerprint": self.scores_fingerprint,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PoolParticipant(db.Model):
    __tablename__ = "pool_participants"

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)
    participant_id = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(100))

    is_active = db.Column(db.Boolean, default=True)
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("pool_id", "participant_id", name="unique_pool_participant"),
        db.Index("idx_pool_participants_active", "pool_id", "is_active"),
    )

    def __repr__(self):
        return f"<PoolParticipant {self.participant_id} pool_id={self.pool_id}>"

    def to_dict(self):
        return {
            "pool_id": self.pool_id,
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }
