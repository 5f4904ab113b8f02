from datetime import datetime
from decimal import Decimal

from catalog import borrow_connection
from database import TIMESTAMP_FORMAT, get_db, now_str
from models import PaymentMethod, Sale, SaleLine
from settings import INVOICE_PREFIX


def _money(value):
    return None if value is None else Decimal(value)


def _text(value):
    return None if value is None else str(value)


class Ledger:
    """Append-only store of completed sales, read by reporting and receipts."""

    def __init__(self, database=None, prefix=INVOICE_PREFIX):
        self.db = database or get_db()
        self.prefix = prefix

    def next_sale_id(self, conn=None):
        # Sales are never deleted, so the next sequence number is never reused.
        with borrow_connection(self.db, conn) as c:
            seq = c.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM sales").fetchone()[0]
        return f"{self.prefix}-{seq:06d}"

    def append(self, sale, conn=None):
        with borrow_connection(self.db, conn) as c:
            c.execute("""
                INSERT INTO sales (id, sale_datetime, subtotal, tax, discount, total, payment_method,
                                   customer_ref, cash_given, change)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (sale.id, sale.timestamp.strftime(TIMESTAMP_FORMAT), str(sale.subtotal), str(sale.tax),
                  str(sale.discount), str(sale.total), sale.payment_method.value, sale.customer_ref,
                  _text(sale.cash_given), _text(sale.change)))
            for position, line in enumerate(sale.lines):
                c.execute("INSERT INTO sale_items (sale_id, position, product_id, product_name, quantity, "
                          "unit_price, line_total) VALUES (?,?,?,?,?,?,?)",
                          (sale.id, position, line.product_id, line.name, line.quantity,
                           str(line.unit_price_at_sale), str(line.line_total)))
        return sale

    def get(self, sale_id):
        with borrow_connection(self.db) as c:
            row = c.execute("SELECT * FROM sales WHERE id = ?", (sale_id,)).fetchone()
            if not row:
                return None
            return self._load(c, row)

    def list_all(self):
        return self._query("SELECT * FROM sales ORDER BY seq")

    def recent(self, limit=20):
        return self._query("SELECT * FROM sales ORDER BY seq DESC LIMIT ?", (limit,))

    def between(self, start, end):
        """Sales whose timestamp falls in [start, end], both datetimes."""
        return self._query("SELECT * FROM sales WHERE sale_datetime BETWEEN ? AND ? ORDER BY seq",
                           (start.strftime(TIMESTAMP_FORMAT), end.strftime(TIMESTAMP_FORMAT)))

    def in_seq_range(self, first_seq, last_seq=None):
        if last_seq is None:
            return self._query("SELECT * FROM sales WHERE seq >= ? ORDER BY seq", (first_seq,))
        return self._query("SELECT * FROM sales WHERE seq BETWEEN ? AND ? ORDER BY seq", (first_seq, last_seq))

    def last_seq(self, conn=None):
        with borrow_connection(self.db, conn) as c:
            return c.execute("SELECT COALESCE(MAX(seq), 0) FROM sales").fetchone()[0]

    def count(self):
        return self.last_seq()

    def attach_receipt(self, sale_id, png_path):
        with borrow_connection(self.db) as c:
            c.execute("INSERT OR REPLACE INTO receipts (sale_id, png_path, created_at) VALUES (?, ?, ?)",
                      (sale_id, png_path, now_str()))

    def receipt_path(self, sale_id):
        with borrow_connection(self.db) as c:
            row = c.execute("SELECT png_path FROM receipts WHERE sale_id = ?", (sale_id,)).fetchone()
        return row['png_path'] if row else None

    def _query(self, sql, params=()):
        with borrow_connection(self.db) as c:
            rows = c.execute(sql, params).fetchall()
            return [self._load(c, r) for r in rows]

    def _load(self, conn, row):
        items = conn.execute("SELECT * FROM sale_items WHERE sale_id = ? ORDER BY position", (row['id'],)).fetchall()
        lines = tuple(
            SaleLine(product_id=i['product_id'], name=i['product_name'], quantity=i['quantity'],
                     unit_price_at_sale=Decimal(i['unit_price']), line_total=Decimal(i['line_total']))
            for i in items
        )
        return Sale(
            id=row['id'],
            lines=lines,
            subtotal=Decimal(row['subtotal']),
            tax=Decimal(row['tax']),
            discount=Decimal(row['discount']),
            total=Decimal(row['total']),
            payment_method=PaymentMethod(row['payment_method']),
            timestamp=datetime.strptime(row['sale_datetime'], TIMESTAMP_FORMAT),
            customer_ref=row['customer_ref'],
            cash_given=_money(row['cash_given']),
            change=_money(row['change']),
        )
