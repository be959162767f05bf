from __future__ import annotations

from typing import Any


class OrderingError(Exception):
    """Erro de validação de negócio, exibido ao cliente com um código estável."""

    error = "VALIDATION_ERROR"
    default_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "errorCode": self.error_code,
            "message": self.message,
            "statusCode": self.status_code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class PosValidationError(OrderingError):
    error = "POS_VALIDATION_ERROR"


class MerchantNotFoundError(OrderingError):
    default_code = "MERCHANT_NOT_FOUND"

    def __init__(self, message: str = "Merchant not found.") -> None:
        super().__init__(message)


class MerchantInactiveError(OrderingError):
    default_code = "MERCHANT_INACTIVE"

    def __init__(self, message: str = "Merchant is currently not accepting orders.") -> None:
        super().__init__(message)


class InvalidQuantityError(PosValidationError):
    default_code = "INVALID_QUANTITY"

    def __init__(self, message: str = "Invalid quantity.", details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)


class MenuNotFoundError(PosValidationError):
    default_code = "MENU_NOT_FOUND"
    status_code = 404

    def __init__(self, menu_id) -> None:
        super().__init__(f"Menu item with ID {menu_id} not found.", details={"menuId": menu_id})


class MenuNotAvailableError(PosValidationError):
    default_code = "MENU_NOT_AVAILABLE"

    def __init__(self, menu_id, menu_name: str) -> None:
        super().__init__(f'Menu item "{menu_name}" is not available.', details={"menuId": menu_id})


class CustomItemError(PosValidationError):
    """Custom items: disabled, name required/too long, invalid/too high price, addons."""


class VoucherError(OrderingError):
    error = "VOUCHER_ERROR"
    default_code = "VOUCHER_INVALID"


class ManualDiscountError(PosValidationError):
    default_code = "MANUAL_DISCOUNT_INVALID"


class InsufficientStockError(PosValidationError):
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, entity_kind: str, entity_id: int, entity_name: str) -> None:
        super().__init__(
            f'Insufficient stock for "{entity_name}".',
            details={"entity": entity_kind, "id": entity_id, "name": entity_name},
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.entity_name = entity_name


class OrderNotFoundError(PosValidationError):
    default_code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str = "Order not found.") -> None:
        super().__init__(message)


class OrderNotEditableError(PosValidationError):
    default_code = "ORDER_NOT_EDITABLE"

    def __init__(self, message: str = "Only PENDING or ACCEPTED orders can be edited.") -> None:
        super().__init__(message)


class OrderTypeMismatchError(PosValidationError):
    default_code = "ORDER_TYPE_MISMATCH"

    def __init__(self, message: str = "Order type cannot be changed in edit mode.") -> None:
        super().__init__(message)


class OrderAlreadyPaidError(PosValidationError):
    default_code = "ORDER_ALREADY_PAID"

    def __init__(self, message: str = "Paid orders cannot be edited.") -> None:
        super().__init__(message)
