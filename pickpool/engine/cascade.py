"""
Recomputation dependency graph.

    MatchResult -> GroupStanding -> bracket slots -> ScoreBreakdown -> Aggregate

build_pool_snapshot() recomputes the whole graph from immutable inputs and
stamps the result with the fingerprint of the result versions it read, so a
snapshot is either entirely at one set of versions or not used at all.
"""

import hashlib
import logging
from dataclasses import dataclass, field

from .aggregator import aggregate_by_participant, rank_leaderboard
from .errors import InvalidPick
from .fixtures import group_fixtures, group_team_ids
from .group_standings import (
    evaluate_global_qualifiers_pick,
    evaluate_group_pick,
    generate_group_standing,
    global_qualifier_order,
)
from .knockout import evaluate_knockout_pick, resolve_bracket
from .match_evaluator import evaluate_match_pick
from .pick_config import StructuralPickType, apply_auto_scaling

logger = logging.getLogger(__name__)


def compute_fingerprint(results, stamps=()):
    """Stable digest of the (match_id, version) pairs plus extra revision stamps"""
    digest = hashlib.sha1()
    for match_id, result in sorted(results.items()):
        digest.update(f"{match_id}={result.version};".encode())
    for stamp in stamps:
        digest.update(f"|{stamp}".encode())
    return digest.hexdigest()


@dataclass
class PoolSnapshot:
    fingerprint: str
    standings: dict = field(default_factory=dict)
    pending_groups: list = field(default_factory=list)
    bracket: object = None
    breakdowns: list = field(default_factory=list)
    aggregates: dict = field(default_factory=dict)
    leaderboard: list = field(default_factory=list)
    invalid_picks: list = field(default_factory=list)

    def breakdowns_for(self, participant_id):
        return [b for b in self.breakdowns if b.participant_id == participant_id]

    def to_dict(self):
        return {
            "fingerprint": self.fingerprint,
            "standings": {gid: s.to_dict() for gid, s in sorted(self.standings.items())},
            "pending_groups": list(self.pending_groups),
            "leaderboard": list(self.leaderboard),
        }


def affected_by(fixtures, match_id):
    """
    Everything downstream of one match result.

    Returns:
        dict with "groups", "matches" (transitive bracket dependents) and "phases"
    """
    by_id = {f.match_id: f for f in fixtures}
    groups = set()
    phases = set()
    downstream = []

    source = by_id.get(match_id)
    if source is not None:
        phases.add(source.phase_id)
        if source.is_group_match:
            groups.add(source.group_id)

    frontier = [match_id]
    seen = {match_id}
    while frontier:
        current = frontier.pop(0)
        current_fixture = by_id.get(current)
        for fixture in fixtures:
            if fixture.match_id in seen:
                continue
            fed_by_match = fixture.depends_on_match(current)
            fed_by_group = False
            if current_fixture is not None and current_fixture.is_group_match:
                for side in ("home", "away"):
                    slot_source = fixture.source_for(side)
                    if slot_source is None:
                        continue
                    if slot_source.kind == "best" or (
                        slot_source.kind == "group" and slot_source.ref == current_fixture.group_id
                    ):
                        fed_by_group = True
            if fed_by_match or fed_by_group:
                seen.add(fixture.match_id)
                downstream.append(fixture.match_id)
                phases.add(fixture.phase_id)
                frontier.append(fixture.match_id)

    return {"groups": sorted(groups), "matches": downstream, "phases": sorted(phases)}


def _structural_payload(structural_picks, participant_id, phase_id):
    return structural_picks.get((participant_id, phase_id)) or {}


def build_pool_snapshot(
    phases,
    fixtures,
    results,
    match_picks,
    structural_picks,
    participant_ids=(),
    fingerprint=None,
    ranker=None,
):
    """
    Recompute every derived entity of a pool.

    Args:
        phases: phase id -> PhaseConfig
        fixtures: list of Fixture
        results: match id -> latest MatchResult
        match_picks: (participant_id, match_id) -> {"home_goals", "away_goals"}
        structural_picks: (participant_id, phase_id) -> payload dict with
            "groups" {group_id: [team ids]}, "global_qualifiers" [team ids]
            or "matches" {match_id: team_id}
        participant_ids: every participant, including ones without picks
        fingerprint: precomputed fingerprint (computed from results if None)
        ranker: cross-group ranking key for qualifier comparisons
    """
    participant_ids = sorted(
        set(participant_ids)
        | {pid for pid, _ in match_picks}
        | {pid for pid, _ in structural_picks}
    )
    snapshot = PoolSnapshot(fingerprint=fingerprint or compute_fingerprint(results))

    # 1. group standings
    groups = group_fixtures(fixtures)
    for group_id in sorted(groups):
        group_matches = groups[group_id]
        standing = generate_group_standing(
            group_id, group_team_ids(group_matches), group_matches, results
        )
        if standing is None:
            snapshot.pending_groups.append(group_id)
        else:
            snapshot.standings[group_id] = standing

    # 2. bracket
    snapshot.bracket = resolve_bracket(
        fixtures, results, snapshot.standings, group_ids=sorted(groups), ranker=ranker
    )

    # 3. breakdowns
    for phase_id in sorted(phases):
        phase = phases[phase_id]
        phase_fixtures = sorted(
            (f for f in fixtures if f.phase_id == phase_id), key=lambda f: f.match_id
        )

        if phase.requires_score:
            rules = apply_auto_scaling(phase).match_pick_rules
            for fixture in phase_fixtures:
                result = results.get(fixture.match_id)
                if result is None or not result.is_decided(allows_draw=fixture.is_group_match):
                    continue
                for participant_id in participant_ids:
                    pick = match_picks.get((participant_id, fixture.match_id))
                    try:
                        snapshot.breakdowns.append(
                            evaluate_match_pick(pick, result, rules, participant_id, phase_id)
                        )
                    except InvalidPick as e:
                        logger.warning(
                            f"Ignoring invalid pick of {participant_id} for {fixture.match_id}: {e}"
                        )
                        snapshot.invalid_picks.append((participant_id, fixture.match_id))

        elif phase.structural_type == StructuralPickType.GROUP_STANDINGS:
            _group_phase_breakdowns(snapshot, phase, phase_fixtures, structural_picks, participant_ids, groups, ranker)

        elif phase.structural_type == StructuralPickType.KNOCKOUT_WINNER:
            for fixture in phase_fixtures:
                winner = snapshot.bracket.winners.get(fixture.match_id)
                if winner is None:
                    continue
                for participant_id in participant_ids:
                    payload = _structural_payload(structural_picks, participant_id, phase_id)
                    pick = (payload.get("matches") or {}).get(fixture.match_id)
                    try:
                        snapshot.breakdowns.append(
                            evaluate_knockout_pick(
                                pick, winner, phase.structural_config,
                                participant_id, fixture.match_id, phase_id,
                            )
                        )
                    except InvalidPick as e:
                        logger.warning(
                            f"Ignoring invalid pick of {participant_id} for {fixture.match_id}: {e}"
                        )
                        snapshot.invalid_picks.append((participant_id, fixture.match_id))

    # 4. aggregates
    snapshot.aggregates = aggregate_by_participant(snapshot.breakdowns, participant_ids)
    snapshot.leaderboard = rank_leaderboard(snapshot.aggregates.values())
    return snapshot


def _group_phase_breakdowns(snapshot, phase, phase_fixtures, structural_picks, participant_ids, groups, ranker):
    config = phase.structural_config
    phase_groups = sorted({f.group_id for f in phase_fixtures if f.is_group_match})

    for group_id in phase_groups:
        standing = snapshot.standings.get(group_id)
        if standing is None:
            continue
        for participant_id in participant_ids:
            payload = _structural_payload(structural_picks, participant_id, phase.phase_id)
            pick = (payload.get("groups") or {}).get(group_id)
            try:
                snapshot.breakdowns.append(
                    evaluate_group_pick(pick, standing, config, participant_id, phase.phase_id)
                )
            except InvalidPick as e:
                logger.warning(f"Ignoring invalid pick of {participant_id} for group {group_id}: {e}")
                snapshot.invalid_picks.append((participant_id, group_id))

    all_ready = bool(phase_groups) and all(g in snapshot.standings for g in groups)
    if config.include_global_qualifiers and all_ready:
        actual = global_qualifier_order(
            [snapshot.standings[g] for g in sorted(groups)], ranker=ranker
        )
        for participant_id in participant_ids:
            payload = _structural_payload(structural_picks, participant_id, phase.phase_id)
            try:
                snapshot.breakdowns.append(
                    evaluate_global_qualifiers_pick(
                        payload.get("global_qualifiers"),
                        actual,
                        config.global_qualifiers_points,
                        participant_id,
                        phase.phase_id,
                    )
                )
            except InvalidPick as e:
                logger.warning(f"Ignoring invalid qualifier pick of {participant_id}: {e}")
                snapshot.invalid_picks.append((participant_id, "global_qualifiers"))
