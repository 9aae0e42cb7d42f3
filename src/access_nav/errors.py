"""Error taxonomy for route requests and best-effort enrichment."""
from __future__ import annotations


class RouteRequestError(Exception):
    """Terminates a route request; ``user_message`` is shown to the user."""

    default_message = "An error occurred while finding the route"

    def __init__(self, user_message: str | None = None):
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class InputError(RouteRequestError):
    default_message = "Please enter both start location and destination"


class NotFoundError(RouteRequestError):
    """An endpoint failed to geocode (no match, or the geocoder was unavailable)."""

    def __init__(self, endpoint: str, query: str):
        self.endpoint = endpoint  # "start" | "destination"
        self.query = query
        super().__init__(f"Could not find location: {query}")


class NoRouteError(RouteRequestError):
    default_message = "Could not find an accessible route between these locations"


class UnknownError(RouteRequestError):
    pass


class RequestSuperseded(Exception):
    """A newer route request started before this one could publish."""


class ProviderUnavailable(Exception):
    """Transport-level failure talking to an external data source."""


class EnrichmentFailure(Exception):
    """Accessibility or weather lookup failed; logged, never surfaced."""
