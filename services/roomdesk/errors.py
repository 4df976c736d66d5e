# ============================================================
# errors.py — Domain errors
# ------------------------------------------------------------
# Every failure is scoped to the user action that caused it.
#   ValidationError : rejected before any write
#   ConflictError   : transaction rolled back, nothing applied
#   NotFoundError   : unknown room / booking id
# ============================================================


class RoomDeskError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RoomDeskError):
    status_code = 400


class ConflictError(RoomDeskError):
    status_code = 409


class NotFoundError(RoomDeskError):
    status_code = 404
