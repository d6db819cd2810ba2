"""Error taxonomy for the cart service. Each error knows the HTTP status it maps to."""

from fastapi import status


class CartServiceError(Exception):
    """Base class for expected cart service failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthRequiredError(CartServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidInputError(CartServiceError):
    """Malformed, missing or non-positive request fields."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(CartServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class CartNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("Cart not found")
        self.user_id = user_id


class CartItemNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__("Cart item not found")
        self.product_id = product_id


class ProductNotFoundError(NotFoundError):
    # POST /cart reports unknown products as a bad request
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, product_id: str):
        super().__init__("Product not found")
        self.product_id = product_id


class InvalidStateError(CartServiceError):
    """Stored data violates an invariant, e.g. a catalog price that is not a number."""

    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamUnavailableError(CartServiceError):
    """External service failed. The geocoder folds this into not-found."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(CartServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
