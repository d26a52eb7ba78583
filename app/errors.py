from __future__ import annotations


class InventoryError(Exception):
    """Base class for failures surfaced to the calling UI/API layer."""

    code = 'INVENTORY_ERROR'
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidQuantity(InventoryError):
    code = 'INVALID_QUANTITY'
    status_code = 400


class NotFound(InventoryError):
    code = 'NOT_FOUND'
    status_code = 404


class PermissionDenied(InventoryError):
    code = 'PERMISSION_DENIED'
    status_code = 403


class Conflict(InventoryError):
    code = 'CONFLICT'
    status_code = 409


class StorageUnavailable(InventoryError):
    code = 'STORAGE_UNAVAILABLE'
    status_code = 503


class DecodeMiss(NotFound):
    code = 'DECODE_MISS'
    status_code = 404


class ValidationFailed(InventoryError):
    code = 'VALIDATION_FAILED'
    status_code = 422


class AuthenticationFailed(InventoryError):
    code = 'AUTHENTICATION_FAILED'
    status_code = 401
