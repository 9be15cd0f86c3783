"""
Exception types raised by the meeting point pipeline.

Every error that reaches the HTTP boundary carries the status code it should
be reported with, so the Flask app can map it without knowing the details.
"""


class MeetPointError(Exception):
    """Base class for errors reported to the caller"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(MeetPointError):
    """The request was rejected before any computation started"""

    status_code = 400


class NoCandidatesError(MeetPointError):
    """No candidate meeting point could be produced for the request"""

    status_code = 404


class ServiceNotConfiguredError(MeetPointError):
    """A feature that needs the maps API was requested without an API key"""

    status_code = 503


class RouteLookupError(Exception):
    """An upstream route lookup failed or returned an unusable response.

    Only raised inside the routing adapter; the route cost provider turns it
    into a fallback estimate.
    """
