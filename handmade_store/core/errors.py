"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``handmade_store.main`` maps them to responses.
"""


class StoreError(Exception):
    """Base exception for store errors."""

    status_code = 500
    default_code = 'STORE_ERROR'

    def __init__(self, message=None, code=None, details=None):
        self.message = message or 'An error occurred in the store'
        self.code = code or self.default_code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        return f"[{self.code}] {self.message}"

    def to_dict(self):
        error_dict = {'detail': self.message, 'code': self.code}
        if self.details:
            error_dict['details'] = self.details
        return error_dict


class ValidationError(StoreError):
    """Malformed or missing input, rejected before any transaction opens."""

    status_code = 400
    default_code = 'VALIDATION_ERROR'


class NotFoundError(StoreError):
    """A referenced item, unit, order or image is absent (or unusable)."""

    status_code = 404
    default_code = 'NOT_FOUND'


class StateConflictError(StoreError):
    """Illegal state transition or a stock inconsistency at allocation time."""

    status_code = 409
    default_code = 'STATE_CONFLICT'


class PersistenceFault(StoreError):
    """Unexpected store-level failure; the whole transaction was rolled back."""

    status_code = 500
    default_code = 'PERSISTENCE_FAULT'


ITEM_NOT_FOUND = 'ITEM_NOT_FOUND'
ITEM_INACTIVE = 'ITEM_INACTIVE'
ITEM_IN_USE = 'ITEM_IN_USE'
IMAGE_NOT_FOUND = 'IMAGE_NOT_FOUND'
UNIT_NOT_FOUND = 'UNIT_NOT_FOUND'
ORDER_NOT_FOUND = 'ORDER_NOT_FOUND'
INVALID_TRANSITION = 'INVALID_TRANSITION'
INSUFFICIENT_STOCK = 'INSUFFICIENT_STOCK'
