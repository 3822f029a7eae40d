"""
Exceptions raised by the rides app.
"""


class InvalidSchedule(ValueError):
    """Raised when a schedule cannot be parsed as a recurrence rule."""

    def __init__(self, schedule, reason=''):
        self.schedule = schedule
        self.reason = reason
        message = f"Invalid schedule {schedule!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
