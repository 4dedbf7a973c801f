"""Domain errors raised by the services layer.

Services raise these instead of ``HTTPException`` so they can be used
outside a request (webhooks, reconciliation, tests). Each error carries
the HTTP status the API layer should answer with; see
``storefront.exception_handlers``.
"""
from typing import Optional


class StorefrontError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        # Provider-internal text. Logged, and only shown on admin routes.
        self.detail = detail


class ValidationError(StorefrontError):
    """Malformed or missing request fields; user-correctable."""

    status_code = 400
    code = "validation_error"


class NotFoundError(StorefrontError):
    status_code = 404
    code = "not_found"


class ProductsUnavailableError(NotFoundError):
    """One or more requested products are missing or inactive."""

    status_code = 400
    code = "products_unavailable"

    def __init__(self, message: str = "Some products are unavailable", *, product_ids=None):
        super().__init__(message)
        self.product_ids = list(product_ids or [])


class NotEligibleError(StorefrontError):
    """Coupon or shipping preconditions are not met."""

    status_code = 400
    code = "not_eligible"


class OutOfStockError(StorefrontError):
    status_code = 409
    code = "out_of_stock"

    def __init__(self, product_name: str, *, product_id: Optional[str] = None):
        super().__init__(f"{product_name} is out of stock")
        self.product_name = product_name
        self.product_id = product_id


class InvalidTransitionError(ValidationError):
    code = "invalid_transition"


class ExternalServiceError(StorefrontError):
    """Payment, email, carrier or storage provider failure."""

    status_code = 502
    code = "external_service_error"

    def __init__(self, message: str, *, provider: str, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.provider = provider


class ServiceNotConfiguredError(ExternalServiceError):
    status_code = 503
    code = "not_configured"

    def __init__(self, provider: str):
        super().__init__(f"{provider} integration not configured", provider=provider)


class AuthenticationError(StorefrontError):
    status_code = 401
    code = "unauthorized"


class AuthorizationError(StorefrontError):
    """Non-admin user calling an admin-only route."""

    status_code = 403
    code = "forbidden"
