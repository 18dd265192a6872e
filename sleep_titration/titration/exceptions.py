"""Exceptions raised by the titration repositories."""


class TitrationStoreError(Exception):
    """Base class for persistence errors in the titration engine."""


class DuplicateObservationError(TitrationStoreError):
    def __init__(self, user_id, night):
        super().__init__(f"An observation already exists for user {user_id} on {night}")
        self.user_id = user_id
        self.night = night


class ObservationNotFoundError(TitrationStoreError):
    def __init__(self, user_id, night):
        super().__init__(f"No observation for user {user_id} on {night}")
        self.user_id = user_id
        self.night = night


class DuplicateWindowError(TitrationStoreError):
    def __init__(self, user_id, week_start_date):
        super().__init__(f"A prescribed window already exists for user {user_id}, week {week_start_date}")
        self.user_id = user_id
        self.week_start_date = week_start_date


class InvalidObservationError(TitrationStoreError):
    """Input failed validation (field ranges, temporal ordering, backfill limit)."""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or {}
