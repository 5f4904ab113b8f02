import logging

from models import CartLine
from pricing import ZERO, compute_totals, to_money
from settings import TAX_RATE

logger = logging.getLogger(__name__)


#cart model
class Cart:
    """Pending purchase for the active register session.

    Lines are kept in insertion order as product id -> quantity. Routine UI
    mutations never raise: requests the catalog cannot satisfy are ignored
    or clamped to the current stock. Stock is validated again at commit.
    """

    def __init__(self, catalog, tax_rate=TAX_RATE):
        self.catalog = catalog
        self.tax_rate = tax_rate
        self._lines = {}
        self.manual_discount = ZERO

    @property
    def lines(self):
        return [CartLine(pid, qty) for pid, qty in self._lines.items()]

    def quantity_of(self, product_id):
        return self._lines.get(product_id, 0)

    @property
    def item_count(self):
        return sum(self._lines.values())

    @property
    def is_empty(self):
        return not self._lines

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(self.lines)

    def add_item(self, product):
        current = self.catalog.sellable_product(product.id)
        if current is None:
            return
        new_qty = self._lines.get(product.id, 0) + 1
        if new_qty > current.stock:
            logger.debug("add %s ignored: stock %s", product.id, current.stock)
            return
        self._lines[product.id] = new_qty

    def set_quantity(self, product_id, quantity):
        if product_id not in self._lines:
            return
        if quantity <= 0:
            self.remove_item(product_id)
            return
        product = self.catalog.sellable_product(product_id)
        if product is None:
            return
        quantity = min(int(quantity), product.stock)
        if quantity <= 0:
            self.remove_item(product_id)
        else:
            self._lines[product_id] = quantity

    def remove_item(self, product_id):
        self._lines.pop(product_id, None)

    def clear(self):
        self._lines.clear()
        self.manual_discount = ZERO

    def set_discount(self, amount):
        amount = to_money(amount or 0)
        self.manual_discount = amount if amount > ZERO else ZERO

    def priced_lines(self):
        """(Product, quantity) pairs at current catalog prices; vanished or withdrawn products are skipped."""
        priced = []
        for pid, qty in self._lines.items():
            product = self.catalog.sellable_product(pid)
            if product is not None:
                priced.append((product, qty))
        return priced

    def totals(self):
        # Display totals only: the discount is applied when the amount due is shown.
        return compute_totals(((p.unit_price, q) for p, q in self.priced_lines()), self.tax_rate)

    def amount_due(self):
        t = self.totals()
        return max(ZERO, t.total - self.manual_discount)

    def snapshot(self):
        return list(self._lines.items()), self.manual_discount
