import logging
from contextlib import contextmanager

from database import commit_with_retry, get_db, now_str
from errors import InsufficientStockError, ProductNotFoundError
from models import Product
from pricing import to_money
from settings import LOW_STOCK_THRESHOLD

logger = logging.getLogger(__name__)


@contextmanager
def borrow_connection(database, conn=None):
    """Yield `conn` when the caller already runs a transaction, else a fresh
    connection that is committed and closed on exit."""
    if conn is not None:
        yield conn
        return
    own = database.connect()
    try:
        yield own
        commit_with_retry(own)
    except Exception:
        own.rollback()
        raise
    finally:
        own.close()


class Catalog:
    """Source of truth for product identity, price and stock."""

    def __init__(self, database=None):
        self.db = database or get_db()

    def get_product(self, product_id, conn=None):
        with borrow_connection(self.db, conn) as c:
            row = c.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        if not row:
            return None
        return Product.from_row(row)

    def sellable_product(self, product_id, conn=None):
        """Like get_product, but deactivated products count as absent."""
        product = self.get_product(product_id, conn=conn)
        if product is None or not product.active:
            return None
        return product

    def require_product(self, product_id, conn=None):
        product = self.sellable_product(product_id, conn=conn)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def list_products(self, category=None, search=None, active_only=True):
        sql = "SELECT * FROM products WHERE 1=1"
        params = []
        if active_only:
            sql += " AND active = 1"
        if category:
            sql += " AND category = ?"
            params.append(category)
        if search:
            sql += " AND (name LIKE ? OR barcode LIKE ? OR id = ?)"
            params.extend([f"%{search}%", f"%{search}%", search])
        sql += " ORDER BY name"
        with borrow_connection(self.db) as c:
            rows = c.execute(sql, params).fetchall()
        return [Product.from_row(r) for r in rows]

    def list_categories(self):
        with borrow_connection(self.db) as c:
            rows = c.execute("SELECT DISTINCT category FROM products WHERE active = 1 AND category != '' "
                             "ORDER BY category").fetchall()
        return [r['category'] for r in rows]

    def add_product(self, name, unit_price, stock, category='', product_id=None, barcode=None, description=None):
        unit_price = to_money(unit_price)
        if unit_price < 0:
            raise ValueError("unit price must be >= 0")
        if int(stock) < 0:
            raise ValueError("stock must be >= 0")
        with borrow_connection(self.db) as c:
            if product_id is None:
                product_id = self._next_product_id(c)
            c.execute("INSERT INTO products (id, name, unit_price, stock, category, barcode, description) "
                      "VALUES (?, ?, ?, ?, ?, ?, ?)",
                      (product_id, name, str(unit_price), int(stock), category, barcode, description))
            if int(stock):
                self._record_movement(c, product_id, int(stock), int(stock), 'initial')
        logger.info("product %s (%s) added with stock %s", product_id, name, stock)
        return self.get_product(product_id)

    def _next_product_id(self, conn):
        n = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0] + 1
        while conn.execute("SELECT 1 FROM products WHERE id = ?", (f"P{n}",)).fetchone():
            n += 1
        return f"P{n}"

    def update_price(self, product_id, unit_price):
        unit_price = to_money(unit_price)
        if unit_price < 0:
            raise ValueError("unit price must be >= 0")
        with borrow_connection(self.db) as c:
            cur = c.execute("UPDATE products SET unit_price = ? WHERE id = ?", (str(unit_price), product_id))
            if cur.rowcount == 0:
                raise ProductNotFoundError(product_id)
        self.db.write_audit('price_update', f"Product {product_id} price -> {unit_price}")

    def deactivate(self, product_id):
        """Withdraw a product from sale; its history and stock movements are kept."""
        with borrow_connection(self.db) as c:
            cur = c.execute("UPDATE products SET active = 0 WHERE id = ?", (product_id,))
            if cur.rowcount == 0:
                raise ProductNotFoundError(product_id)
        self.db.write_audit('product_deactivate', f"Product {product_id} withdrawn from sale")

    def decrement_stock(self, product_id, amount, conn=None, reason='sale', reference=None):
        """Compare-and-decrement: the UPDATE only matches while enough stock remains."""
        with borrow_connection(self.db, conn) as c:
            cur = c.execute("UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?",
                            (amount, product_id, amount))
            if cur.rowcount == 0:
                row = c.execute("SELECT stock FROM products WHERE id = ?", (product_id,)).fetchone()
                if not row:
                    raise ProductNotFoundError(product_id)
                raise InsufficientStockError(product_id, amount, row['stock'])
            balance = c.execute("SELECT stock FROM products WHERE id = ?", (product_id,)).fetchone()['stock']
            self._record_movement(c, product_id, -amount, balance, reason, reference)
        return balance

    def restock(self, product_id, amount, reference=None):
        if int(amount) <= 0:
            raise ValueError("restock amount must be positive")
        with borrow_connection(self.db) as c:
            cur = c.execute("UPDATE products SET stock = stock + ? WHERE id = ?", (int(amount), product_id))
            if cur.rowcount == 0:
                raise ProductNotFoundError(product_id)
            balance = c.execute("SELECT stock FROM products WHERE id = ?", (product_id,)).fetchone()['stock']
            self._record_movement(c, product_id, int(amount), balance, 'restock', reference)
        logger.info("restocked %s by %s (now %s)", product_id, amount, balance)
        return balance

    def adjust_stock(self, product_id, new_stock):
        """Set stock to an absolute count typed by an operator; negatives clamp to 0."""
        new_stock = max(0, int(new_stock))
        with borrow_connection(self.db) as c:
            row = c.execute("SELECT stock FROM products WHERE id = ?", (product_id,)).fetchone()
            if not row:
                raise ProductNotFoundError(product_id)
            current = int(row['stock'])
            c.execute("UPDATE products SET stock = ? WHERE id = ?", (new_stock, product_id))
            self._record_movement(c, product_id, new_stock - current, new_stock, 'adjustment')
        self.db.write_audit('stock_adjust', f"Product {product_id} stock {current} -> {new_stock}")
        return new_stock - current

    def low_stock(self, threshold=LOW_STOCK_THRESHOLD):
        with borrow_connection(self.db) as c:
            rows = c.execute("SELECT * FROM products WHERE active = 1 AND stock <= ? ORDER BY stock, name",
                             (threshold,)).fetchall()
        return [Product.from_row(r) for r in rows]

    def stock_movements(self, product_id=None, limit=100):
        with borrow_connection(self.db) as c:
            if product_id:
                rows = c.execute("SELECT * FROM stock_movements WHERE product_id = ? ORDER BY id DESC LIMIT ?",
                                 (product_id, limit)).fetchall()
            else:
                rows = c.execute("SELECT * FROM stock_movements ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]

    def _record_movement(self, conn, product_id, change, balance, reason, reference=None):
        conn.execute("INSERT INTO stock_movements (product_id, change, balance, reason, reference, created_at) "
                     "VALUES (?, ?, ?, ?, ?, ?)",
                     (product_id, change, balance, reason, reference, now_str()))
