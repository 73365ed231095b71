"""
Error taxonomy for the scoring engine.

Caller errors are raised immediately and never retried. ResultNotDecided is an
expected state: callers treat it as "pending" rather than as a failure.
"""


class PickPoolError(Exception):
    """Base class for all engine errors"""

    status_code = 400
    code = "PICKPOOL_ERROR"

    def __init__(self, message=None, **details):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self):
        data = {"error": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class InvalidPick(PickPoolError):
    """Pick payload does not match the phase's requiresScore flag"""

    code = "INVALID_PICK"


class PickLocked(PickPoolError):
    """Pick deadline has passed"""

    code = "PICK_LOCKED"


class ConfigInconsistent(PickPoolError):
    """Phase has both or neither of matchPicks and structuralPicks"""

    code = "CONFIG_INCONSISTENT"


class MissingReason(PickPoolError):
    """A correction (version > 1) was submitted without a reason"""

    code = "MISSING_REASON"


class UnknownMatch(PickPoolError):
    """Match is not part of the pool fixture list"""

    status_code = 404
    code = "UNKNOWN_MATCH"


class ConcurrentCorrectionConflict(PickPoolError):
    """Another publish/correct operation on the same match won the race"""

    status_code = 409
    code = "CONCURRENT_CORRECTION_CONFLICT"


class ResultNotDecided(PickPoolError):
    """No definitive result exists yet; callers must treat this as pending"""

    status_code = 202
    code = "RESULT_NOT_DECIDED"


class UnknownPool(PickPoolError):
    """Pool does not exist"""

    status_code = 404
    code = "UNKNOWN_POOL"
