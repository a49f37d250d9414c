"""Custom exception classes for the application."""


class ListingWatchException(Exception):
    """Base exception for all listingwatch errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class TransientFetchError(ListingWatchException):
    """Raised on network errors, timeouts and non-success HTTP statuses."""

    def __init__(self, source: str, message: str, status_code: int = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"Fetch failed for {source}: {message}")


class RateLimitError(TransientFetchError):
    """Raised when an external API rate limit is hit."""

    def __init__(self, source: str):
        super().__init__(source, "rate limit exceeded", status_code=429)


class ExtractionFailed(ListingWatchException):
    """Raised when a rendered page yields no usable title or price."""

    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Extraction failed for {url}: {reason}")


class NoProductData(ListingWatchException):
    """Raised when both primary and fallback paths produced nothing."""

    def __init__(self, source: str, target: str):
        super().__init__(f"No product data from {source} for {target}")


class SupplierTitleInvalid(ListingWatchException):
    """Raised when a supplier page title is shorter than 3 characters."""

    def __init__(self, url: str, title: str):
        self.title = title
        super().__init__(f"Supplier title too short for {url}: {title!r}")


class CredentialsNotConfigured(ListingWatchException):
    """Raised when API credentials are missing or still placeholders."""

    def __init__(self, service: str):
        super().__init__(f"Credentials not configured for {service}")


class SchedulerConfigError(ListingWatchException):
    """Raised when a tenant's monitoring frequency is invalid."""

    def __init__(self, tenant_id: str, frequency):
        self.tenant_id = tenant_id
        self.frequency = frequency
        super().__init__(
            f"Invalid monitoring frequency {frequency!r} for tenant {tenant_id}"
        )
