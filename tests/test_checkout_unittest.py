import os
import tempfile
import threading
import unittest
import sys
from datetime import datetime
from decimal import Decimal
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from cart import Cart
from catalog import Catalog
from checkout import SaleCommitEngine
from database import DatabaseManager
from errors import (
    EmptyCartError,
    ErrorKind,
    InsufficientPaymentError,
    InsufficientStockError,
    MissingPaymentMethodError,
    ProductNotFoundError,
    RegisterClosedError,
    SaleError,
)
from ledger import Ledger
from models import CommitState, PaymentMethod
from register import CashRegister

RATE = Decimal('0.10')


def fixed_clock():
    return datetime(2025, 3, 14, 12, 30, 15, 999)


class SaleCommitEngineTests(unittest.TestCase):
    def setUp(self):
        tf = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        tf.close()
        self.db_path = tf.name
        self.mgr = DatabaseManager(db_name=self.db_path)
        self.catalog = Catalog(self.mgr)
        self.ledger = Ledger(self.mgr)
        self.engine = SaleCommitEngine(self.catalog, self.ledger, tax_rate=RATE, clock=fixed_clock)
        self.p1 = self.catalog.add_product('Espresso', '10.00', 5, 'Drinks', product_id='P1')
        self.p2 = self.catalog.add_product('Bagel', '3.33', 20, 'Food', product_id='P2')
        self.cart = Cart(self.catalog, tax_rate=RATE)

    def tearDown(self):
        for suffix in ('', '-wal', '-shm'):
            try:
                os.unlink(self.db_path + suffix)
            except OSError:
                pass

    def stock(self, pid):
        return self.catalog.get_product(pid).stock

    def fill(self, pid, qty, cart=None):
        if cart is None:
            cart = self.cart
        cart.add_item(self.catalog.get_product(pid))
        cart.set_quantity(pid, qty)
        return cart

    def test_cash_sale_commits(self):
        self.fill('P1', 2)
        t = self.cart.totals()
        self.assertEqual((t.subtotal, t.tax, t.total), (Decimal('20.00'), Decimal('2.00'), Decimal('22.00')))

        sale = self.engine.commit(self.cart, 'cash')

        self.assertEqual(sale.total, Decimal('22.00'))
        self.assertEqual(sale.payment_method, PaymentMethod.CASH)
        self.assertEqual(sale.id, 'FAC-000001')
        self.assertEqual(sale.timestamp, datetime(2025, 3, 14, 12, 30, 15))
        self.assertEqual(self.stock('P1'), 3)
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.engine.state, CommitState.COMMITTED)
        self.assertEqual(self.ledger.get(sale.id), sale)

    def test_insufficient_stock_leaves_everything_unchanged(self):
        self.catalog.restock('P1', 5)
        self.fill('P1', 10)
        self.catalog.adjust_stock('P1', 5)
        before = self.cart.lines

        with self.assertRaises(InsufficientStockError) as ctx:
            self.engine.commit(self.cart, 'cash')

        e = ctx.exception
        self.assertEqual((e.product_id, e.requested, e.available), ('P1', 10, 5))
        self.assertEqual(e.kind, ErrorKind.INSUFFICIENT_STOCK)
        self.assertEqual(self.cart.lines, before)
        self.assertEqual(self.stock('P1'), 5)
        self.assertEqual(self.ledger.count(), 0)
        self.assertEqual(self.engine.state, CommitState.REJECTED)

    def test_empty_cart_rejected(self):
        with self.assertRaises(EmptyCartError):
            self.engine.commit(self.cart, 'cash')

    def test_missing_payment_method_rejected(self):
        self.fill('P1', 1)
        for method in (None, '', 'cheque'):
            with self.assertRaises(MissingPaymentMethodError):
                self.engine.commit(self.cart, method)
        self.assertEqual(self.cart.quantity_of('P1'), 1)
        self.assertEqual(self.stock('P1'), 5)

    def test_empty_cart_is_checked_before_payment_method(self):
        with self.assertRaises(EmptyCartError):
            self.engine.commit(self.cart, None)

    def test_vanished_product_rejected(self):
        self.fill('P1', 1)
        self.cart._lines['GONE'] = 1
        with self.assertRaises(ProductNotFoundError) as ctx:
            self.engine.commit(self.cart, 'card')
        self.assertEqual(ctx.exception.product_id, 'GONE')
        self.assertEqual(self.stock('P1'), 5)

    def test_deactivated_product_cannot_be_sold(self):
        self.fill('P1', 2)
        self.catalog.deactivate('P1')
        with self.assertRaises(ProductNotFoundError) as ctx:
            self.engine.commit(self.cart, 'cash')
        self.assertEqual(ctx.exception.product_id, 'P1')
        self.assertEqual(self.stock('P1'), 5)
        self.assertEqual(self.ledger.count(), 0)
        self.assertEqual(self.cart.quantity_of('P1'), 2)

    def test_register_is_checked_inside_the_sale_transaction(self):
        seen = []

        class ClosingRegister:
            # open when asked outside the transaction, closed by the time the sale runs
            is_open = True

            def current_session(self, conn=None):
                seen.append(conn)
                return None

        engine = SaleCommitEngine(self.catalog, self.ledger, tax_rate=RATE, register=ClosingRegister())
        self.fill('P1', 1)
        with self.assertRaises(RegisterClosedError):
            engine.commit(self.cart, 'cash')
        self.assertEqual(len(seen), 1)
        self.assertIsNotNone(seen[0])
        self.assertEqual(self.stock('P1'), 5)
        self.assertEqual(self.cart.quantity_of('P1'), 1)

    def test_register_closed_by_another_register_rejects_sale(self):
        register = CashRegister(self.ledger)
        register.open('0')
        engine = SaleCommitEngine(self.catalog, self.ledger, tax_rate=RATE, register=register)
        self.fill('P1', 1)
        CashRegister(Ledger(self.mgr)).close()
        with self.assertRaises(RegisterClosedError):
            engine.commit(self.cart, 'cash')
        self.assertEqual(self.ledger.count(), 0)

    def test_failure_on_second_line_rolls_back_first(self):
        self.fill('P2', 4)
        self.fill('P1', 5)
        self.catalog.adjust_stock('P1', 2)
        discount_before = Decimal('1.00')
        self.cart.set_discount(discount_before)
        with self.assertRaises(InsufficientStockError):
            self.engine.commit(self.cart, 'digital')
        self.assertEqual(self.stock('P2'), 20)
        self.assertEqual(self.cart.snapshot(), ([('P2', 4), ('P1', 5)], discount_before))
        self.assertEqual(self.catalog.stock_movements('P2')[0]['reason'], 'initial')

    def test_price_is_frozen_at_commit(self):
        self.fill('P2', 3)
        sale = self.engine.commit(self.cart, 'card')
        self.catalog.update_price('P2', '99.99')
        stored = self.ledger.get(sale.id)
        self.assertEqual(stored.lines[0].unit_price_at_sale, Decimal('3.33'))
        self.assertEqual(stored.lines[0].line_total, Decimal('9.99'))
        self.assertEqual(stored.total, sale.total)

    def test_commit_uses_current_price_not_cart_time_price(self):
        self.fill('P1', 1)
        self.catalog.update_price('P1', '12.00')
        sale = self.engine.commit(self.cart, 'card')
        self.assertEqual(sale.subtotal, Decimal('12.00'))

    def test_total_identity_with_discount(self):
        self.fill('P1', 1)
        self.fill('P2', 3)
        self.cart.set_discount('2.50')
        sale = self.engine.commit(self.cart, 'card')
        expected_subtotal = sum((l.unit_price_at_sale * l.quantity for l in sale.lines), Decimal('0'))
        self.assertEqual(sale.subtotal, expected_subtotal)
        self.assertEqual(sale.total, max(Decimal('0'), sale.subtotal + sale.tax - sale.discount))
        self.assertEqual(sale.discount, Decimal('2.50'))

    def test_discount_larger_than_total_is_clamped(self):
        self.fill('P2', 1)
        self.cart.set_discount('100')
        sale = self.engine.commit(self.cart, 'cash')
        self.assertEqual(sale.total, Decimal('0.00'))
        self.assertEqual(sale.discount, sale.subtotal + sale.tax)

    def test_cash_change_and_insufficient_payment(self):
        self.fill('P1', 1)
        with self.assertRaises(InsufficientPaymentError):
            self.engine.commit(self.cart, 'cash', cash_given='10.99')
        self.assertFalse(self.cart.is_empty)
        sale = self.engine.commit(self.cart, 'cash', cash_given=20)
        self.assertEqual(sale.cash_given, Decimal('20.00'))
        self.assertEqual(sale.change, Decimal('9.00'))

    def test_customer_ref_is_optional(self):
        self.fill('P1', 1)
        sale = self.engine.commit(self.cart, 'card', customer_ref='')
        self.assertIsNone(sale.customer_ref)
        self.fill('P1', 1)
        sale = self.engine.commit(self.cart, 'card', customer_ref='ana@example.com')
        self.assertEqual(self.ledger.get(sale.id).customer_ref, 'ana@example.com')

    def test_sale_ids_are_sequential(self):
        ids = []
        for _ in range(3):
            self.fill('P2', 1)
            ids.append(self.engine.commit(self.cart, 'cash').id)
        self.assertEqual(ids, ['FAC-000001', 'FAC-000002', 'FAC-000003'])
        self.assertEqual([s.id for s in self.ledger.list_all()], ids)

    def test_stock_movements_reference_sale(self):
        self.fill('P1', 2)
        sale = self.engine.commit(self.cart, 'cash')
        mv = self.catalog.stock_movements('P1')[0]
        self.assertEqual((mv['change'], mv['reference']), (-2, sale.id))

    def test_audit_records_outcomes(self):
        with self.assertRaises(SaleError):
            self.engine.commit(self.cart, 'cash')
        self.fill('P1', 1)
        self.engine.commit(self.cart, 'cash')
        self.assertEqual(len(self.mgr.audit_events('sale_rejected')), 1)
        self.assertEqual(len(self.mgr.audit_events('sale_committed')), 1)

    def test_closed_register_rejects_sales(self):
        register = CashRegister(self.ledger)
        engine = SaleCommitEngine(self.catalog, self.ledger, tax_rate=RATE, register=register)
        self.fill('P1', 1)
        with self.assertRaises(RegisterClosedError):
            engine.commit(self.cart, 'cash')
        register.open('50')
        engine.commit(self.cart, 'cash')
        self.assertEqual(self.stock('P1'), 4)

    def test_preview_includes_discount(self):
        self.fill('P1', 1)
        self.cart.set_discount('1')
        t = self.engine.preview(self.cart)
        self.assertEqual(t.total, Decimal('10.00'))

    def test_catalog_and_ledger_must_share_database(self):
        tf = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        tf.close()
        try:
            other = Ledger(DatabaseManager(db_name=tf.name))
            with self.assertRaises(ValueError):
                SaleCommitEngine(self.catalog, other)
        finally:
            for suffix in ('', '-wal', '-shm'):
                try:
                    os.unlink(tf.name + suffix)
                except OSError:
                    pass

    def test_concurrent_registers_never_oversell(self):
        # Two registers on the same database both want 3 of the 5 units.
        carts = [self.fill('P1', 3, Cart(self.catalog, tax_rate=RATE)) for _ in range(2)]
        results = []

        def run(cart):
            engine = SaleCommitEngine(Catalog(self.mgr), Ledger(self.mgr), tax_rate=RATE)
            try:
                results.append(engine.commit(cart, 'cash'))
            except InsufficientStockError as e:
                results.append(e)

        threads = [threading.Thread(target=run, args=(c,)) for c in carts]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        sales = [r for r in results if not isinstance(r, Exception)]
        self.assertEqual(len(sales), 1)
        self.assertEqual(self.stock('P1'), 2)
        self.assertEqual(self.ledger.count(), 1)


if __name__ == '__main__':
    unittest.main()
