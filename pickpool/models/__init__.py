from pickpool import db  # noqa: F401 - imported for model imports

from .audit_event import AuditEvent
from .fixture import Fixture
from .match_result import MatchResultHeader, MatchResultVersion
from .pick import MatchPick, StructuralPick
from .pool import Pool, PoolParticipant

__all__ = [
    "Pool",
    "PoolParticipant",
    "Fixture",
    "MatchResultHeader",
    "MatchResultVersion",
    "MatchPick",
    "StructuralPick",
    "AuditEvent",
]
