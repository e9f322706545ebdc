"""Error taxonomy for the processing pipeline."""


class UpsellServiceError(Exception):
    """Base class for all service errors."""


class ConfigurationError(UpsellServiceError):
    """Required external identifiers (shop, access token) are missing."""


class ShopifyAPIError(UpsellServiceError):
    """Transport or GraphQL level failure talking to the Admin API."""

    def __init__(self, message: str, status_code: int | None = None, errors: list | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class UpstreamFetchError(UpsellServiceError):
    """Paginated order export failed; the whole attempt is aborted."""


class GenerationServiceError(UpsellServiceError):
    """Text generation call or response parsing failed.

    Always recovered locally with the rule-based fallback.
    """


class StoreError(UpsellServiceError):
    """Persisting the recommendation or configuration record failed."""
