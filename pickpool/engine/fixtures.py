"""
Tournament fixture values.

Knockout fixtures may not know their teams yet. Each side then carries a
source reference that the bracket resolver fills in:

    group:<group_id>:<position>   team finishing at position in a group
    best:<position>:<rank>        rank-th best team at position across groups
    winner:<match_id>             winner of an earlier match
    loser:<match_id>              loser of an earlier match (third-place games)
"""

from dataclasses import dataclass
from datetime import datetime

from .errors import ConfigInconsistent

SOURCE_KINDS = ("group", "best", "winner", "loser")


@dataclass(frozen=True)
class SlotSource:
    kind: str
    ref: str
    position: int = None

    @classmethod
    def parse(cls, raw):
        if not raw:
            return None
        parts = raw.split(":")
        kind = parts[0]
        if kind not in SOURCE_KINDS:
            raise ConfigInconsistent(f"Unknown slot source: {raw}")

        try:
            if kind == "group" and len(parts) == 3:
                return cls(kind=kind, ref=parts[1], position=int(parts[2]))
            if kind == "best" and len(parts) == 3:
                # ref holds the group position, position holds the cross-group rank
                return cls(kind=kind, ref=parts[1], position=int(parts[2]))
            if kind in ("winner", "loser") and len(parts) == 2:
                return cls(kind=kind, ref=parts[1])
        except ValueError:
            pass
        raise ConfigInconsistent(f"Malformed slot source: {raw}")

    def __str__(self):
        if self.position is None:
            return f"{self.kind}:{self.ref}"
        return f"{self.kind}:{self.ref}:{self.position}"


@dataclass(frozen=True)
class Fixture:
    match_id: str
    phase_id: str
    home_team_id: str = None
    away_team_id: str = None
    group_id: str = None
    home_source: str = None
    away_source: str = None
    kickoff_utc: datetime = None

    @property
    def is_group_match(self):
        return self.group_id is not None

    @property
    def is_knockout(self):
        return self.group_id is None

    def source_for(self, side):
        raw = self.home_source if side == "home" else self.away_source
        return SlotSource.parse(raw)

    def team_for(self, side):
        return self.home_team_id if side == "home" else self.away_team_id

    def depends_on_match(self, match_id):
        """Sides of this fixture fed by the winner/loser of match_id"""
        sides = []
        for side in ("home", "away"):
            source = self.source_for(side)
            if source and source.kind in ("winner", "loser") and source.ref == match_id:
                sides.append(side)
        return sides

    def to_dict(self):
        return {
            "match_id": self.match_id,
            "phase_id": self.phase_id,
            "group_id": self.group_id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "home_source": self.home_source,
            "away_source": self.away_source,
            "kickoff_utc": self.kickoff_utc.isoformat() if self.kickoff_utc else None,
        }


def group_fixtures(fixtures):
    """Map group id -> list of that group's fixtures"""
    groups = {}
    for fixture in fixtures:
        if fixture.is_group_match:
            groups.setdefault(fixture.group_id, []).append(fixture)
    return groups


def group_team_ids(fixtures):
    """Sorted team ids appearing in a group's fixtures"""
    teams = set()
    for fixture in fixtures:
        teams.add(fixture.home_team_id)
        teams.add(fixture.away_team_id)
    teams.discard(None)
    return sorted(teams)
