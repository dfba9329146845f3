"""
Error taxonomy of the availability engine.

ValidationError: malformed query, raised before cache/persistence are touched.
UpstreamDataError: persistence collaborator failed or returned garbage.
    Never coerced into an "all unavailable" answer.
"""


class AvailabilityError(Exception):
    """Base class for availability engine errors."""


class ValidationError(AvailabilityError):
    """Query parameters are invalid (bad date, unknown plan, negative units...)."""


class UpstreamDataError(AvailabilityError):
    """Resource data could not be loaded or had an unexpected shape."""
