from __future__ import annotations


class AppError(Exception):
    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class MissingCoordinatesError(AppError):
    def __init__(self, message: str = "Coordinates missing for route calculation", details: dict | None = None) -> None:
        super().__init__(code="missing_coordinates", message=message, details=details)


class CalculationCancelledError(AppError):
    def __init__(self, message: str = "Route calculation was cancelled", details: dict | None = None) -> None:
        super().__init__(code="calculation_cancelled", message=message, details=details)


class ProviderError(AppError):
    """Failure value returned by a route provider.

    Providers hand these back instead of raising them so that callers can
    branch on the type without exception-based control flow.
    """

    default_code = "provider_error"

    def __init__(self, provider: str, message: str, details: dict | None = None) -> None:
        super().__init__(code=self.default_code, message=message, details=details)
        self.provider = provider


class ProviderUnavailable(ProviderError):
    default_code = "provider_unavailable"


class NoRouteFound(ProviderError):
    default_code = "no_route_found"


class RateLimited(ProviderError):
    default_code = "rate_limited"
