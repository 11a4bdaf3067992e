"""Error taxonomy of the Data Verification Engine.

A rejected report is *not* an error: it is a normal result carrying
``is_rejected=True``.  These exceptions cover the cases where no usable
outcome exists.
"""


class DVEError(Exception):
    """Base class for engine failures."""


class ReportValidationError(DVEError):
    """The submission is malformed; nothing was persisted."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class StationNotFoundError(DVEError):
    """Unknown station, or a station without coordinates; nothing was persisted."""

    def __init__(self, station_id):
        super().__init__(f"Station not found or missing coordinates: {station_id}")
        self.station_id = station_id


class StorageError(DVEError):
    """A read or write against the backing store failed.

    The engine does not retry.  The caller must treat the report as not
    reliably persisted.
    """
