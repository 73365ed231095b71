"""
Pick intake.

Picks are overwritten in place until their deadline (kickoff minus the pool's
deadline_minutes_before_kickoff) and refused with PickLocked afterwards.
Structural picks lock at the first kickoff of their phase.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from pickpool import db
from pickpool.engine.errors import InvalidPick, PickLocked, UnknownMatch
from pickpool.engine.group_standings import validate_order_pick
from pickpool.engine.match_evaluator import validate_score_pick
from pickpool.engine.pick_config import StructuralPickType
from pickpool.models import Fixture, MatchPick, PoolParticipant, StructuralPick

logger = logging.getLogger(__name__)


def ensure_participant(pool, participant_id, display_name=None):
    """Register the participant in the pool on first contact"""
    participant = PoolParticipant.query.filter_by(
        pool_id=pool.id, participant_id=participant_id
    ).first()
    if participant is None:
        participant = PoolParticipant(
            pool_id=pool.id, participant_id=participant_id, display_name=display_name
        )
        db.session.add(participant)
        logger.info(f"Participant {participant_id} joined pool {pool.id}")
    elif not participant.is_active:
        participant.is_active = True
    return participant


def _check_deadline(pool, fixture, now):
    if fixture.is_locked(pool.deadline_minutes_before_kickoff, now):
        raise PickLocked(
            f"Picks for {fixture.match_id} closed at "
            f"{fixture.pick_deadline(pool.deadline_minutes_before_kickoff).isoformat()}",
            match_id=fixture.match_id,
        )


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to save pick: {e}")
        raise


def save_match_pick(pool, participant_id, match_id, home_goals, away_goals, now=None):
    """Create or overwrite a score pick; returns the MatchPick row"""
    now = now or datetime.now(timezone.utc)
    fixture = Fixture.get_by_match(pool.id, match_id)
    if fixture is None:
        raise UnknownMatch(f"Match {match_id} is not part of pool {pool.id}", match_id=match_id)

    phase = pool.get_phase(fixture.phase_id)
    if not phase.requires_score:
        raise InvalidPick(
            f"Phase {phase.phase_id} takes structural picks, not scores", phase_id=phase.phase_id
        )

    home_goals, away_goals = validate_score_pick((home_goals, away_goals))
    _check_deadline(pool, fixture, now)

    ensure_participant(pool, participant_id)
    pick = MatchPick.query.filter_by(
        pool_id=pool.id, participant_id=participant_id, match_id=match_id
    ).first()
    if pick is None:
        pick = MatchPick(pool_id=pool.id, participant_id=participant_id, match_id=match_id)
        db.session.add(pick)

    pick.home_goals = home_goals
    pick.away_goals = away_goals
    pool.bump_picks_revision()
    _commit()

    logger.info(f"Saved pick {participant_id} {match_id} {home_goals}-{away_goals}")
    return pick


def validate_structural_payload(phase, payload, fixtures):
    """Check a structural payload against the phase type; returns the cleaned payload"""
    if not isinstance(payload, dict):
        raise InvalidPick("Structural pick payload must be an object")

    if phase.structural_type == StructuralPickType.GROUP_STANDINGS:
        group_ids = {f.group_id for f in fixtures if f.group_id is not None}
        groups = payload.get("groups") or {}
        if not isinstance(groups, dict):
            raise InvalidPick("groups must map group ids to ordered team lists")

        cleaned = {"groups": {}}
        for group_id, order in groups.items():
            if group_id not in group_ids:
                raise InvalidPick(f"Unknown group {group_id}", group_id=group_id)
            cleaned["groups"][group_id] = validate_order_pick(order)

        if payload.get("global_qualifiers") is not None:
            if not phase.structural_config.include_global_qualifiers:
                raise InvalidPick("This phase does not take global qualifier picks")
            cleaned["global_qualifiers"] = validate_order_pick(payload["global_qualifiers"])
        return cleaned

    match_ids = {f.match_id for f in fixtures}
    matches = payload.get("matches") or {}
    if not isinstance(matches, dict):
        raise InvalidPick("matches must map match ids to team ids")
    for match_id, team_id in matches.items():
        if match_id not in match_ids:
            raise InvalidPick(f"Match {match_id} is not in phase {phase.phase_id}", match_id=match_id)
        if not isinstance(team_id, str) or not team_id:
            raise InvalidPick("Knockout pick must be a team id", match_id=match_id)
    return {"matches": dict(matches)}


def save_structural_pick(pool, participant_id, phase_id, payload, now=None):
    """Create or overwrite a participant's structural pick for a phase"""
    now = now or datetime.now(timezone.utc)
    phase = pool.get_phase(phase_id)
    if phase.requires_score:
        raise InvalidPick(f"Phase {phase_id} takes score picks", phase_id=phase_id)

    fixtures = Fixture.query.filter_by(pool_id=pool.id, phase_id=phase_id).all()
    cleaned = validate_structural_payload(phase, payload, fixtures)

    scheduled = [f for f in fixtures if f.kickoff]
    if scheduled:
        first = min(scheduled, key=lambda f: f.kickoff)
        _check_deadline(pool, first, now)

    ensure_participant(pool, participant_id)
    pick = StructuralPick.query.filter_by(
        pool_id=pool.id, participant_id=participant_id, phase_id=phase_id
    ).first()
    if pick is None:
        pick = StructuralPick(pool_id=pool.id, participant_id=participant_id, phase_id=phase_id)
        db.session.add(pick)

    pick.payload = cleaned
    pool.bump_picks_revision()
    _commit()

    logger.info(f"Saved structural pick {participant_id} {phase_id}")
    return pick
