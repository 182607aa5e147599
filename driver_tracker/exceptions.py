"""
Error kinds reported by the tracking client
"""


class TrackerError(Exception):
    """Base class for errors surfaced to the driver"""
    title = "Error"


class PermissionDeniedError(TrackerError):
    """Location access was declined or revoked"""
    title = "Permissions required"


class AuthMissingError(TrackerError):
    """No access token is stored"""
    title = "Authentication error"


class AuthenticationError(TrackerError):
    """The fleet API rejected the credentials"""
    title = "Login error"


class AuthServiceError(TrackerError):
    """The fleet API could not be reached or answered unexpectedly"""
    title = "Network error"


class TransportError(TrackerError):
    """The realtime connection failed, dropped or is not open"""
    title = "Connection error"


class LocationFetchError(TrackerError):
    """The device could not produce a position"""
    title = "Location error"


class MalformedResponseError(TrackerError):
    """A server response did not have the expected shape"""
    title = "Server error"
