from enum import Enum


class ErrorKind(Enum):
    EMPTY_CART = "empty_cart"
    MISSING_PAYMENT_METHOD = "missing_payment_method"
    PRODUCT_NOT_FOUND = "product_not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INSUFFICIENT_PAYMENT = "insufficient_payment"
    REGISTER_CLOSED = "register_closed"


class POSError(Exception):
    """Base class for every error raised by the register services."""


class SaleError(POSError):
    """A sale could not be committed. Recoverable by the operator.

    `kind` tells the caller which rule was violated so the UI can show the
    right message and leave the cart editable.
    """
    kind = None

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class EmptyCartError(SaleError):
    kind = ErrorKind.EMPTY_CART

    def __init__(self):
        super().__init__("Cart is empty: add products before completing the sale.")


class MissingPaymentMethodError(SaleError):
    kind = ErrorKind.MISSING_PAYMENT_METHOD

    def __init__(self, given=None):
        self.given = given
        if given is None or given == "":
            msg = "A payment method is required (cash, card or digital)."
        else:
            msg = f"Unknown payment method {given!r}: use cash, card or digital."
        super().__init__(msg)


class ProductNotFoundError(SaleError):
    kind = ErrorKind.PRODUCT_NOT_FOUND

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} no longer exists in the catalog.")


class InsufficientStockError(SaleError):
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, product_id, requested, available):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}."
        )


class InsufficientPaymentError(SaleError):
    kind = ErrorKind.INSUFFICIENT_PAYMENT

    def __init__(self, amount_due, tendered):
        self.amount_due = amount_due
        self.tendered = tendered
        super().__init__(f"Cash given {tendered} does not cover the total {amount_due}.")


class RegisterClosedError(SaleError):
    kind = ErrorKind.REGISTER_CLOSED

    def __init__(self):
        super().__init__("The cash register is closed: open it before processing sales.")


class RegisterError(POSError):
    """Raised for invalid register lifecycle actions (opening twice, closing a closed register)."""
