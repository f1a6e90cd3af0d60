from __future__ import annotations

from fastapi import HTTPException


class InvalidRecurrenceRule(HTTPException):
    def __init__(self, detail: str = "Invalid recurrence rule") -> None:
        super().__init__(status_code=400, detail=detail)


class InvalidTimeRange(HTTPException):
    def __init__(self, detail: str = "end_at must be after start_at") -> None:
        super().__init__(status_code=400, detail=detail)


class NotFound(HTTPException):
    # Raised for missing records and for records owned by someone else alike.
    def __init__(self, detail: str = "Event not found") -> None:
        super().__init__(status_code=404, detail=detail)


class TransactionFailure(HTTPException):
    def __init__(self, detail: str = "Failed to save schedule changes") -> None:
        super().__init__(status_code=500, detail=detail)
