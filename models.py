from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


#product model
class Product:
    def __init__(self, id, name, unit_price, stock, category='', barcode=None, description=None, active=True):
        self.id = id
        self.name = name
        self.unit_price = Decimal(unit_price)
        self.stock = int(stock)
        self.category = category
        self.barcode = barcode
        self.description = description
        self.active = bool(active)

    @classmethod
    def from_row(cls, row):
        return cls(row['id'], row['name'], row['unit_price'], row['stock'], row['category'],
                   row['barcode'], row['description'], row['active'])

    def __repr__(self):
        return f"Product({self.id!r}, {self.name!r}, price={self.unit_price}, stock={self.stock})"


#cart line model
class CartLine:
    def __init__(self, product_id, quantity):
        self.product_id = product_id
        self.quantity = quantity

    def __eq__(self, other):
        if not isinstance(other, CartLine):
            return NotImplemented
        return (self.product_id, self.quantity) == (other.product_id, other.quantity)

    def __repr__(self):
        return f"CartLine({self.product_id!r}, {self.quantity})"


class PaymentMethod(Enum):
    CASH = "cash"
    CARD = "card"
    DIGITAL = "digital"

    @property
    def label(self):
        return {
            PaymentMethod.CASH: "Cash",
            PaymentMethod.CARD: "Debit Card",
            PaymentMethod.DIGITAL: "Digital Payment",
        }[self]

    @classmethod
    def parse(cls, value):
        """Return the matching member, or None for a missing or unknown method."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class CommitState(Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    discount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class SaleLine:
    product_id: str
    name: str
    quantity: int
    unit_price_at_sale: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class Sale:
    """A completed transaction. Never mutated once the commit engine creates it."""
    id: str
    lines: tuple
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    payment_method: PaymentMethod
    timestamp: datetime
    customer_ref: str = None
    cash_given: Decimal = None
    change: Decimal = None

    @property
    def item_count(self):
        return sum(line.quantity for line in self.lines)


#register session model
class RegisterSession:
    def __init__(self, id, opened_at, opening_amount, operator=None, closed_at=None,
                 first_sale_seq=1, last_sale_seq=None):
        self.id = id
        self.opened_at = opened_at
        self.opening_amount = Decimal(opening_amount)
        self.operator = operator
        self.closed_at = closed_at
        self.first_sale_seq = first_sale_seq
        self.last_sale_seq = last_sale_seq
        self.summary = None

    @property
    def is_open(self):
        return self.closed_at is None

    @classmethod
    def from_row(cls, row):
        return cls(row['id'], row['opened_at'], row['opening_amount'], row['operator'],
                   row['closed_at'], row['first_sale_seq'], row['last_sale_seq'])
