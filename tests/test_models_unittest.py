import os
import unittest
import sys
from decimal import Decimal
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from errors import ErrorKind, InsufficientStockError, MissingPaymentMethodError, SaleError
from models import CartLine, PaymentMethod, Product


class ModelTests(unittest.TestCase):
    def test_payment_method_parse(self):
        self.assertIs(PaymentMethod.parse('cash'), PaymentMethod.CASH)
        self.assertIs(PaymentMethod.parse(' Card '), PaymentMethod.CARD)
        self.assertIs(PaymentMethod.parse(PaymentMethod.DIGITAL), PaymentMethod.DIGITAL)
        self.assertIsNone(PaymentMethod.parse(None))
        self.assertIsNone(PaymentMethod.parse('bitcoin'))

    def test_payment_method_labels(self):
        self.assertEqual([m.label for m in PaymentMethod], ['Cash', 'Debit Card', 'Digital Payment'])

    def test_product_coerces_types(self):
        p = Product('P1', 'Espresso', '2.50', '7')
        self.assertEqual((p.unit_price, p.stock, p.active), (Decimal('2.50'), 7, True))

    def test_cart_line_equality(self):
        self.assertEqual(CartLine('P1', 2), CartLine('P1', 2))
        self.assertNotEqual(CartLine('P1', 2), CartLine('P1', 3))

    def test_errors_carry_kind_and_message(self):
        e = InsufficientStockError('P1', 10, 5)
        self.assertIsInstance(e, SaleError)
        self.assertEqual(e.kind, ErrorKind.INSUFFICIENT_STOCK)
        self.assertEqual(e.message, 'Insufficient stock for product P1: requested 10, available 5.')
        self.assertIn('cheque', MissingPaymentMethodError('cheque').message)


if __name__ == '__main__':
    unittest.main()
