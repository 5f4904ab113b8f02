"""Sale commit engine: turns the active cart into an immutable sale.

Validation, price snapshot, stock decrement and ledger append all happen
inside one exclusive SQLite transaction, so a rejected or failed commit
leaves the catalog, the ledger and the cart exactly as they were. The cart
is cleared only after the transaction has been committed.
"""
import logging
import threading
from datetime import datetime

from database import commit_with_retry
from errors import (
    EmptyCartError,
    InsufficientPaymentError,
    InsufficientStockError,
    MissingPaymentMethodError,
    RegisterClosedError,
    SaleError,
)
from models import CommitState, PaymentMethod, Sale, SaleLine
from pricing import compute_totals, line_total, to_money
from settings import TAX_RATE

logger = logging.getLogger(__name__)


#Check-out service
class SaleCommitEngine:
    def __init__(self, catalog, ledger, tax_rate=TAX_RATE, register=None, clock=datetime.now):
        if catalog.db.db_name != ledger.db.db_name:
            raise ValueError("catalog and ledger must share one database to commit atomically")
        self.catalog = catalog
        self.ledger = ledger
        self.db = catalog.db
        self.tax_rate = tax_rate
        self.register = register
        self.clock = clock
        self.state = CommitState.PENDING
        self._lock = threading.Lock()

    def commit(self, cart, payment_method, customer_ref=None, cash_given=None):
        with self._lock:
            self.state = CommitState.VALIDATING
            try:
                sale = self._commit(cart, payment_method, customer_ref, cash_given)
            except SaleError as e:
                self.state = CommitState.REJECTED
                logger.info("sale rejected (%s): %s", e.kind.value, e.message)
                self.db.write_audit('sale_rejected', f"{e.kind.value}: {e.message}")
                raise
            except Exception:
                self.state = CommitState.REJECTED
                logger.exception("sale commit failed")
                raise
            self.state = CommitState.COMMITTED
            logger.info("sale %s committed: %s items, total %s, %s",
                        sale.id, sale.item_count, sale.total, sale.payment_method.value)
            self.db.write_audit('sale_committed', f"Sale {sale.id} total {sale.total} ({sale.payment_method.value})")
            return sale

    def _commit(self, cart, payment_method, customer_ref, cash_given):
        if cart.is_empty:
            raise EmptyCartError()
        method = PaymentMethod.parse(payment_method)
        if method is None:
            raise MissingPaymentMethodError(payment_method)

        requested, discount = cart.snapshot()
        conn = self.db.connect()
        try:
            # Take the write lock before reading stock so no other register can
            # sell the same units between validation and decrement.
            conn.execute("BEGIN IMMEDIATE")
            # Register state is read under the same write lock as the stock.
            if self.register is not None and self.register.current_session(conn=conn) is None:
                raise RegisterClosedError()
            products = []
            for product_id, qty in requested:
                product = self.catalog.require_product(product_id, conn=conn)
                if qty > product.stock:
                    raise InsufficientStockError(product_id, qty, product.stock)
                products.append((product, qty))

            lines = tuple(
                SaleLine(product_id=p.id, name=p.name, quantity=qty,
                         unit_price_at_sale=p.unit_price, line_total=line_total(p.unit_price, qty))
                for p, qty in products
            )
            totals = compute_totals(((l.unit_price_at_sale, l.quantity) for l in lines),
                                    self.tax_rate, discount)

            change = None
            if cash_given is not None:
                cash_given = to_money(cash_given)
                if cash_given < totals.total:
                    raise InsufficientPaymentError(totals.total, cash_given)
                change = cash_given - totals.total

            sale = Sale(
                id=self.ledger.next_sale_id(conn=conn),
                lines=lines,
                subtotal=totals.subtotal,
                tax=totals.tax,
                discount=totals.discount,
                total=totals.total,
                payment_method=method,
                timestamp=self.clock().replace(microsecond=0),
                customer_ref=customer_ref or None,
                cash_given=cash_given,
                change=change,
            )

            for line in lines:
                self.catalog.decrement_stock(line.product_id, line.quantity, conn=conn,
                                             reason='sale', reference=sale.id)
            self.ledger.append(sale, conn=conn)
            commit_with_retry(conn)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        cart.clear()
        return sale

    def preview(self, cart):
        """Totals the commit would produce right now, including the cart's discount."""
        priced = [(p.unit_price, q) for p, q in cart.priced_lines()]
        return compute_totals(priced, self.tax_rate, cart.manual_discount)
