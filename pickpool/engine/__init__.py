"""
Scoring and standings engine.

Pure functions over immutable values: nothing in this package touches the
database, the cache or the Flask application.
"""

from .aggregator import Aggregate, aggregate, aggregate_by_participant, rank_leaderboard
from .breakdown import RuleEvaluation, ScoreBreakdown
from .cascade import PoolSnapshot, affected_by, build_pool_snapshot, compute_fingerprint
from .errors import (
    ConcurrentCorrectionConflict,
    ConfigInconsistent,
    InvalidPick,
    MissingReason,
    PickLocked,
    PickPoolError,
    ResultNotDecided,
    UnknownMatch,
    UnknownPool,
)
from .fixtures import Fixture, SlotSource
from .group_standings import (
    GroupStanding,
    evaluate_global_qualifiers_pick,
    evaluate_group_pick,
    generate_group_standing,
    rank_across_groups,
)
from .knockout import evaluate_knockout_pick, propagate, resolve_bracket, resolve_winner
from .match_evaluator import evaluate_match_pick
from .pick_config import (
    PhaseConfig,
    PickTypeKey,
    PickTypeRule,
    StructuralPickType,
    apply_auto_scaling,
    get_preset,
    parse_pool_config,
    validate_pool_config,
)
from .results import MatchResult, ResultHistory

__all__ = [
    "Aggregate",
    "aggregate",
    "aggregate_by_participant",
    "rank_leaderboard",
    "RuleEvaluation",
    "ScoreBreakdown",
    "PoolSnapshot",
    "affected_by",
    "build_pool_snapshot",
    "compute_fingerprint",
    "PickPoolError",
    "InvalidPick",
    "PickLocked",
    "ConfigInconsistent",
    "MissingReason",
    "UnknownMatch",
    "UnknownPool",
    "ConcurrentCorrectionConflict",
    "ResultNotDecided",
    "Fixture",
    "SlotSource",
    "GroupStanding",
    "generate_group_standing",
    "evaluate_group_pick",
    "rank_across_groups",
    "evaluate_global_qualifiers_pick",
    "resolve_winner",
    "resolve_bracket",
    "propagate",
    "evaluate_knockout_pick",
    "evaluate_match_pick",
    "PhaseConfig",
    "PickTypeKey",
    "PickTypeRule",
    "StructuralPickType",
    "apply_auto_scaling",
    "get_preset",
    "parse_pool_config",
    "validate_pool_config",
    "MatchResult",
    "ResultHistory",
]
