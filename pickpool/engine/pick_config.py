"""
Pick configuration for pool phases.

A phase is either score-based (participants predict a score for every match and
the enabled PickTypeRules are evaluated) or structural (participants predict a
group finishing order or knockout survivors). Never both.

Stored JSON shape (one entry per phase)::

    {
        "phaseId": "group_stage",
        "phaseName": "Group stage",
        "requiresScore": true,
        "matchPicks": {
            "types": [{"key": "EXACT_SCORE", "enabled": true, "points": 10}],
            "autoScaling": {"enabled": true, "basePhase": "group_stage",
                            "multipliers": {"round_of_16": 1.5}}
        },
        "structuralPicks": null
    }
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum

from .errors import ConfigInconsistent

GROUP_SIZE = 4


class PickTypeKey(str, Enum):
    EXACT_SCORE = "EXACT_SCORE"
    GOAL_DIFFERENCE = "GOAL_DIFFERENCE"
    PARTIAL_SCORE = "PARTIAL_SCORE"
    TOTAL_GOALS = "TOTAL_GOALS"
    MATCH_OUTCOME = "MATCH_OUTCOME"
    HOME_GOALS = "HOME_GOALS"
    AWAY_GOALS = "AWAY_GOALS"

    @classmethod
    def parse(cls, value):
        """Parse a stored key, accepting the legacy 90-minute outcome spelling"""
        if isinstance(value, cls):
            return value
        if value == "MATCH_OUTCOME_90MIN":
            return cls.MATCH_OUTCOME
        try:
            return cls(value)
        except ValueError:
            raise ConfigInconsistent(f"Unknown pick type: {value}")


class StructuralPickType(str, Enum):
    GROUP_STANDINGS = "GROUP_STANDINGS"
    KNOCKOUT_WINNER = "KNOCKOUT_WINNER"


@dataclass(frozen=True)
class PickTypeRule:
    key: PickTypeKey
    enabled: bool
    points: int

    @classmethod
    def from_dict(cls, data):
        return cls(
            key=PickTypeKey.parse(data["key"]),
            enabled=bool(data.get("enabled", False)),
            points=int(data.get("points", 0)),
        )

    def to_dict(self):
        return {"key": self.key.value, "enabled": self.enabled, "points": self.points}


@dataclass(frozen=True)
class GroupStandingsConfig:
    position_points: tuple = (0, 0, 0, 0)
    bonus_perfect_group_enabled: bool = False
    bonus_perfect_group: int = 0
    include_global_qualifiers: bool = False
    global_qualifiers_points: int = 0

    @classmethod
    def from_dict(cls, data):
        if "pointsPerPosition" in data:
            points = tuple(int(p) for p in data["pointsPerPosition"])
        else:
            points = (int(data.get("pointsPerExactPosition", 0)),) * GROUP_SIZE

        if len(points) != GROUP_SIZE:
            raise ConfigInconsistent(
                f"pointsPerPosition must have {GROUP_SIZE} entries, got {len(points)}"
            )

        bonus = int(data.get("bonusPerfectGroup") or 0)
        bonus_enabled = data.get("bonusPerfectGroupEnabled")
        if bonus_enabled is None:
            bonus_enabled = bonus > 0

        return cls(
            position_points=points,
            bonus_perfect_group_enabled=bool(bonus_enabled),
            bonus_perfect_group=bonus,
            include_global_qualifiers=bool(data.get("includeGlobalQualifiers", False)),
            global_qualifiers_points=int(data.get("globalQualifiersPoints") or 0),
        )

    def to_dict(self):
        return {
            "pointsPerPosition": list(self.position_points),
            "bonusPerfectGroupEnabled": self.bonus_perfect_group_enabled,
            "bonusPerfectGroup": self.bonus_perfect_group,
            "includeGlobalQualifiers": self.include_global_qualifiers,
            "globalQualifiersPoints": self.global_qualifiers_points,
        }


@dataclass(frozen=True)
class KnockoutWinnerConfig:
    points_per_correct_advance: int = 0

    @classmethod
    def from_dict(cls, data):
        return cls(points_per_correct_advance=int(data.get("pointsPerCorrectAdvance", 0)))

    def to_dict(self):
        return {"pointsPerCorrectAdvance": self.points_per_correct_advance}


@dataclass(frozen=True)
class AutoScalingConfig:
    enabled: bool = False
    base_phase: str = ""
    multipliers: dict = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data):
        return cls(
            enabled=bool(data.get("enabled", False)),
            base_phase=data.get("basePhase", ""),
            multipliers={k: float(v) for k, v in (data.get("multipliers") or {}).items()},
        )

    def to_dict(self):
        return {
            "enabled": self.enabled,
            "basePhase": self.base_phase,
            "multipliers": dict(self.multipliers),
        }


_STRUCTURAL_CONFIG_TYPES = {
    StructuralPickType.GROUP_STANDINGS: GroupStandingsConfig,
    StructuralPickType.KNOCKOUT_WINNER: KnockoutWinnerConfig,
}


@dataclass(frozen=True)
class PhaseConfig:
    phase_id: str
    requires_score: bool
    match_pick_rules: tuple = ()
    structural_config: object = None
    phase_name: str = ""
    auto_scaling: AutoScalingConfig = None

    def __post_init__(self):
        has_rules = len(self.match_pick_rules) > 0
        has_structural = self.structural_config is not None

        if self.requires_score and has_structural:
            raise ConfigInconsistent(
                f"Phase {self.phase_id} requires scores but also has a structural config",
                phase_id=self.phase_id,
            )
        if self.requires_score and not has_rules:
            raise ConfigInconsistent(
                f"Phase {self.phase_id} requires scores but has no match pick rules",
                phase_id=self.phase_id,
            )
        if not self.requires_score and has_rules:
            raise ConfigInconsistent(
                f"Phase {self.phase_id} is structural but has match pick rules",
                phase_id=self.phase_id,
            )
        if not self.requires_score and not has_structural:
            raise ConfigInconsistent(
                f"Phase {self.phase_id} is structural but has no structural config",
                phase_id=self.phase_id,
            )

    @property
    def is_score_based(self):
        return self.requires_score

    @property
    def is_structural(self):
        return not self.requires_score

    @property
    def structural_type(self):
        """StructuralPickType of this phase (None for score-based phases)"""
        if isinstance(self.structural_config, GroupStandingsConfig):
            return StructuralPickType.GROUP_STANDINGS
        if isinstance(self.structural_config, KnockoutWinnerConfig):
            return StructuralPickType.KNOCKOUT_WINNER
        return None

    @property
    def enabled_rules(self):
        return [rule for rule in self.match_pick_rules if rule.enabled]

    @classmethod
    def from_dict(cls, data):
        phase_id = data.get("phaseId")
        if not phase_id:
            raise ConfigInconsistent("Phase config is missing phaseId")

        match_picks = data.get("matchPicks") or {}
        structural = data.get("structuralPicks")

        rules = tuple(PickTypeRule.from_dict(t) for t in match_picks.get("types") or [])
        auto_scaling = None
        if match_picks.get("autoScaling"):
            auto_scaling = AutoScalingConfig.from_dict(match_picks["autoScaling"])

        structural_config = None
        if structural:
            try:
                structural_type = StructuralPickType(structural.get("type"))
            except ValueError:
                raise ConfigInconsistent(
                    f"Unknown structural pick type: {structural.get('type')}",
                    phase_id=phase_id,
                )
            config_cls = _STRUCTURAL_CONFIG_TYPES[structural_type]
            structural_config = config_cls.from_dict(structural.get("config") or {})

        return cls(
            phase_id=phase_id,
            requires_score=bool(data.get("requiresScore", False)),
            match_pick_rules=rules,
            structural_config=structural_config,
            phase_name=data.get("phaseName", ""),
            auto_scaling=auto_scaling,
        )

    def to_dict(self):
        data = {
            "phaseId": self.phase_id,
            "phaseName": self.phase_name,
            "requiresScore": self.requires_score,
        }
        if self.requires_score:
            match_picks = {"types": [rule.to_dict() for rule in self.match_pick_rules]}
            if self.auto_scaling:
                match_picks["autoScaling"] = self.auto_scaling.to_dict()
            data["matchPicks"] = match_picks
        else:
            data["structuralPicks"] = {
                "type": self.structural_type.value,
                "config": self.structural_config.to_dict(),
            }
        return data


def parse_pool_config(raw_phases):
    """Parse the stored list of phase dicts into PhaseConfig objects keyed by phase id"""
    phases = {}
    for raw in raw_phases or []:
        phase = PhaseConfig.from_dict(raw)
        if phase.phase_id in phases:
            raise ConfigInconsistent(f"Duplicate phase id: {phase.phase_id}")
        phases[phase.phase_id] = phase
    return phases


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def apply_auto_scaling(phase, phase_id=None):
    """Return a copy of a score-based phase with rule points scaled for phase_id"""
    if not phase.requires_score or not phase.auto_scaling or not phase.auto_scaling.enabled:
        return phase

    multiplier = phase.auto_scaling.multipliers.get(phase_id or phase.phase_id)
    if not multiplier:
        return phase

    rules = tuple(
        replace(rule, points=_round_half_up(rule.points * multiplier))
        for rule in phase.match_pick_rules
    )
    return replace(phase, match_pick_rules=rules)


def max_points_per_match(phase):
    """Highest possible score for one match; rules always stack"""
    if not phase.requires_score:
        return 0
    return sum(rule.points for rule in apply_auto_scaling(phase).enabled_rules)


def max_points_for_phase(phase, match_count):
    return max_points_per_match(phase) * match_count


def validate_pool_config(raw_phases):
    """
    Validate a stored pool configuration without raising.

    Returns:
        tuple: (errors, warnings), each a list of {"field", "message"} dicts
    """
    errors = []
    warnings = []
    seen = set()

    for index, raw in enumerate(raw_phases or []):
        field_prefix = f"phases[{index}]"
        try:
            phase = PhaseConfig.from_dict(raw)
        except ConfigInconsistent as e:
            errors.append({"field": field_prefix, "message": e.message})
            continue

        if phase.phase_id in seen:
            errors.append(
                {"field": f"{field_prefix}.phaseId", "message": f"Duplicate phase id {phase.phase_id}"}
            )
        seen.add(phase.phase_id)

        for rule in phase.match_pick_rules:
            if rule.points < 0:
                errors.append(
                    {
                        "field": f"{field_prefix}.matchPicks.{rule.key.value}",
                        "message": "Points cannot be negative",
                    }
                )

        if phase.requires_score:
            enabled = {rule.key for rule in phase.enabled_rules}
            if not enabled:
                warnings.append(
                    {"field": f"{field_prefix}.matchPicks", "message": "No pick type is enabled"}
                )
            if {PickTypeKey.EXACT_SCORE, PickTypeKey.PARTIAL_SCORE} <= enabled:
                warnings.append(
                    {
                        "field": f"{field_prefix}.matchPicks",
                        "message": "EXACT_SCORE and PARTIAL_SCORE are both enabled; "
                        "disable rules to run an exclusive scheme",
                    }
                )

    return errors, warnings


# Presets

DEFAULT_MULTIPLIERS = {
    "group_stage": 1.0,
    "round_of_32": 1.25,
    "round_of_16": 1.5,
    "quarter_finals": 2.0,
    "semi_finals": 2.5,
    "third_place": 2.5,
    "final": 3.0,
}

PRESET_PHASES = [
    ("group_stage", "Group stage"),
    ("round_of_16", "Round of 16"),
    ("quarter_finals", "Quarter-finals"),
    ("semi_finals", "Semi-finals"),
    ("final", "Final"),
]


def _score_phase(phase_id, phase_name, points_by_key):
    rules = tuple(
        PickTypeRule(key=key, enabled=key in points_by_key, points=points_by_key.get(key, 0))
        for key in PickTypeKey
    )
    return PhaseConfig(
        phase_id=phase_id,
        requires_score=True,
        match_pick_rules=rules,
        phase_name=phase_name,
        auto_scaling=AutoScalingConfig(
            enabled=True, base_phase="group_stage", multipliers=dict(DEFAULT_MULTIPLIERS)
        ),
    )


def _basic_preset():
    return [
        _score_phase(phase_id, name, {PickTypeKey.EXACT_SCORE: 20})
        for phase_id, name in PRESET_PHASES
    ]


def _cumulative_preset():
    points = {
        PickTypeKey.MATCH_OUTCOME: 5,
        PickTypeKey.HOME_GOALS: 2,
        PickTypeKey.AWAY_GOALS: 2,
        PickTypeKey.GOAL_DIFFERENCE: 1,
    }
    return [_score_phase(phase_id, name, points) for phase_id, name in PRESET_PHASES]


def _simple_preset():
    phases = [
        PhaseConfig(
            phase_id="group_stage",
            requires_score=False,
            structural_config=GroupStandingsConfig(
                position_points=(10,) * GROUP_SIZE,
                bonus_perfect_group_enabled=True,
                bonus_perfect_group=20,
            ),
            phase_name="Group stage",
        )
    ]
    for index, (phase_id, name) in enumerate(PRESET_PHASES[1:]):
        phases.append(
            PhaseConfig(
                phase_id=phase_id,
                requires_score=False,
                structural_config=KnockoutWinnerConfig(points_per_correct_advance=10 * (index + 2)),
                phase_name=name,
            )
        )
    return phases


PRESETS = {
    "BASIC": ("Basic", "Exact score only, points grow in knockout rounds", _basic_preset),
    "CUMULATIVE": (
        "Cumulative",
        "Outcome, home goals, away goals and goal difference all stack",
        _cumulative_preset,
    ),
    "SIMPLE": ("Simple", "No scores: group finishing order and knockout winners", _simple_preset),
}


def get_preset(key):
    """Return a fresh list of PhaseConfig for a preset key (None if unknown)"""
    preset = PRESETS.get(key)
    if not preset:
        return None
    return preset[2]()
