import os
import tempfile
import unittest
import sys
from decimal import Decimal
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from cart import Cart
from catalog import Catalog
from database import DatabaseManager
from models import CartLine


class CartTests(unittest.TestCase):
    def setUp(self):
        tf = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        tf.close()
        self.db_path = tf.name
        self.catalog = Catalog(DatabaseManager(db_name=self.db_path))
        self.p1 = self.catalog.add_product('Espresso', '10.00', 5, 'Drinks', product_id='P1')
        self.p2 = self.catalog.add_product('Muffin', '2.25', 1, 'Food', product_id='P2')
        self.cart = Cart(self.catalog, tax_rate=Decimal('0.10'))

    def tearDown(self):
        for suffix in ('', '-wal', '-shm'):
            try:
                os.unlink(self.db_path + suffix)
            except OSError:
                pass

    def test_add_item_increments_quantity(self):
        self.cart.add_item(self.p1)
        self.cart.add_item(self.p1)
        self.assertEqual(self.cart.lines, [CartLine('P1', 2)])
        self.assertEqual(self.cart.item_count, 2)

    def test_add_item_stops_at_stock(self):
        self.cart.add_item(self.p2)
        self.cart.add_item(self.p2)
        self.assertEqual(self.cart.quantity_of('P2'), 1)

    def test_add_item_out_of_stock_is_ignored(self):
        self.catalog.adjust_stock('P2', 0)
        self.cart.add_item(self.p2)
        self.assertTrue(self.cart.is_empty)

    def test_deactivated_product_cannot_be_added(self):
        self.catalog.deactivate('P2')
        self.cart.add_item(self.p2)
        self.assertTrue(self.cart.is_empty)

    def test_deactivated_product_drops_out_of_display_totals(self):
        self.cart.add_item(self.p1)
        self.cart.add_item(self.p2)
        self.catalog.deactivate('P2')
        self.assertEqual([p.id for p, _ in self.cart.priced_lines()], ['P1'])
        self.assertEqual(self.cart.totals().subtotal, Decimal('10.00'))

    def test_lines_keep_insertion_order(self):
        self.cart.add_item(self.p2)
        self.cart.add_item(self.p1)
        self.assertEqual([l.product_id for l in self.cart], ['P2', 'P1'])

    def test_set_quantity_clamps_to_stock(self):
        self.cart.add_item(self.p1)
        self.cart.set_quantity('P1', 50)
        self.assertEqual(self.cart.quantity_of('P1'), 5)

    def test_set_quantity_zero_removes_line(self):
        self.cart.add_item(self.p1)
        self.cart.set_quantity('P1', 0)
        self.assertTrue(self.cart.is_empty)

    def test_set_quantity_on_absent_line_is_noop(self):
        self.cart.set_quantity('P1', 3)
        self.assertTrue(self.cart.is_empty)

    def test_remove_item(self):
        self.cart.add_item(self.p1)
        self.cart.add_item(self.p2)
        self.cart.remove_item('P1')
        self.assertEqual(self.cart.lines, [CartLine('P2', 1)])
        self.cart.remove_item('missing')
        self.assertEqual(len(self.cart), 1)

    def test_clear_is_idempotent(self):
        self.cart.clear()
        self.assertTrue(self.cart.is_empty)
        self.cart.add_item(self.p1)
        self.cart.set_discount('3')
        self.cart.clear()
        first = (self.cart.lines, self.cart.manual_discount)
        self.cart.clear()
        self.assertEqual((self.cart.lines, self.cart.manual_discount), first)
        self.assertEqual(self.cart.manual_discount, Decimal('0.00'))

    def test_totals_use_catalog_prices(self):
        self.cart.add_item(self.p1)
        self.cart.set_quantity('P1', 2)
        t = self.cart.totals()
        self.assertEqual((t.subtotal, t.tax, t.total), (Decimal('20.00'), Decimal('2.00'), Decimal('22.00')))

    def test_amount_due_subtracts_discount(self):
        self.cart.add_item(self.p1)
        self.cart.set_discount('5')
        self.assertEqual(self.cart.amount_due(), Decimal('6.00'))
        self.cart.set_discount('100')
        self.assertEqual(self.cart.amount_due(), Decimal('0.00'))

    def test_negative_discount_is_ignored(self):
        self.cart.set_discount('-2')
        self.assertEqual(self.cart.manual_discount, Decimal('0.00'))

    def test_snapshot_is_detached(self):
        self.cart.add_item(self.p1)
        items, discount = self.cart.snapshot()
        self.cart.add_item(self.p1)
        self.assertEqual(items, [('P1', 1)])
        self.assertEqual(discount, Decimal('0.00'))


if __name__ == '__main__':
    unittest.main()
