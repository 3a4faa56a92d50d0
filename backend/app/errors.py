"""
Error taxonomy for the incident pipeline.

Per-record and per-source errors (MalformedRecordError, SourceFetchError,
PersistenceError during ingestion) are caught and aggregated by the batch
that raised them. Per-action errors (claims, status changes, auth) reach the
HTTP layer, where main.py renders them with `status_code`.
"""


class TowRadarError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class SourceFetchError(TowRadarError):
    status_code = 502

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class MalformedRecordError(TowRadarError):
    status_code = 422


class PersistenceError(TowRadarError):
    status_code = 500


class ConflictError(TowRadarError):
    status_code = 409


class NoTruckAvailableError(ConflictError):
    pass


class CapacityError(TowRadarError):
    status_code = 409


class InvalidTransitionError(TowRadarError):
    status_code = 409


class ValidationError(TowRadarError):
    status_code = 422


class AuthError(TowRadarError):
    status_code = 401


class NotFoundError(TowRadarError):
    status_code = 404


class DeliveryError(TowRadarError):
    """One outbound notification (email/SMS/push) could not be delivered."""

    status_code = 502

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class RateLimitError(TowRadarError):
    status_code = 429
