"""
Error taxonomy for the Aranet4 Reader Service.

BLE, session and decode errors propagate to the poller, which decides
between retrying and alerting. Reporting and alerting errors never leave
their sinks.
"""


class AranetReaderError(Exception):
    """Base exception for all reader errors."""
    pass


class DecodeError(AranetReaderError):
    """Malformed sensor payload."""
    pass


class InvalidInputError(DecodeError):
    """Payload is not a byte sequence."""
    pass


class TooShortError(DecodeError):
    """Payload is shorter than the fixed layout."""

    def __init__(self, length: int, expected: int):
        super().__init__(f"Invalid data length: got {length} bytes, expected at least {expected} bytes")
        self.length = length
        self.expected = expected


class DiscoveryError(AranetReaderError):
    """Adapter or scan failure while looking for the sensor."""
    pass


class SessionError(AranetReaderError):
    """Failure during connect/discover/read of a connected sensor."""
    pass


class ServiceNotFoundError(SessionError):
    pass


class CharacteristicNotFoundError(SessionError):
    pass


class EmptyPayloadError(SessionError):
    pass


class TransportError(SessionError):
    """Underlying BLE transport failure; the cause is chained."""
    pass


class ReadingTimeoutError(AranetReaderError):
    """A bounded reading attempt exceeded its deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"Reading operation timed out after {timeout:g}s")
        self.timeout = timeout


class AttemptCrashedError(AranetReaderError):
    """A reading attempt died with an error outside this taxonomy."""
    pass


class ReportingError(AranetReaderError):
    pass


class AlertingError(AranetReaderError):
    pass
