from __future__ import annotations


class DraftError(Exception):
    """Base error with a wire-safe code, sent to peers as {"code", "msg"}."""

    code = "DRAFT_ERROR"

    def __init__(self, msg: str, code: str | None = None) -> None:
        super().__init__(msg)
        self.msg = msg
        if code is not None:
            self.code = code

    def payload(self) -> dict[str, str]:
        return {"code": self.code, "msg": self.msg}


class AllocationError(DraftError):
    code = "ALLOCATION_FAILED"


class IllegalActionError(DraftError):
    code = "ILLEGAL_ACTION"


class OutOfTurnError(DraftError):
    code = "OUT_OF_TURN"


class DraftFinishedError(DraftError):
    code = "DRAFT_FINISHED"


class ActionInFlightError(DraftError):
    code = "ACTION_IN_FLIGHT"


class BroadcastError(DraftError):
    code = "BROADCAST_FAILED"
