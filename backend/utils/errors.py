"""
Error taxonomy for the shelter guide backend.

Every failure the services can report is one of these classes so the Flask
layer can map it to a status code without inspecting messages:

- InvalidArgument: malformed coordinates, non-positive radius, unknown mode
- ProviderUnavailable: routing or shelter provider timed out / failed
- NoRouteFound: a route payload produced no coordinates
- NoFramesParsed: wildfire input produced no usable frames
- MalformedExternalRecord: a single external record failed normalization
"""


class ShelterGuideError(Exception):
    """Base class for all classified errors raised by the services."""

    status_code = 500

    def to_dict(self):
        return {
            'error': self.__class__.__name__,
            'message': str(self)
        }


class InvalidArgument(ShelterGuideError, ValueError):
    """Caller supplied an argument outside the accepted domain. Never retried."""

    status_code = 400


class ProviderUnavailable(ShelterGuideError):
    """An external provider could not be reached or returned a failure."""

    status_code = 503

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider} unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class NoRouteFound(ShelterGuideError):
    """Route normalization ended with an empty coordinate buffer."""

    status_code = 404


class NoFramesParsed(ShelterGuideError):
    """Wildfire ingestion ended with zero frames after filtering."""

    status_code = 422


class MalformedExternalRecord(ShelterGuideError):
    """A single shelter or frame record could not be normalized."""

    status_code = 422

    def __init__(self, message: str, record=None):
        super().__init__(message)
        self.record = record
