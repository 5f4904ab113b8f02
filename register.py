import logging
from decimal import Decimal

from catalog import borrow_connection
from database import now_str
from errors import RegisterError
from models import PaymentMethod, RegisterSession
from pricing import ZERO, to_money

logger = logging.getLogger(__name__)


class CashRegister:
    """Open/close lifecycle of the cash drawer for one register.

    A session owns every sale committed between its opening and closing;
    the closing summary reports sales per payment method and the cash that
    should be in the drawer.
    """

    def __init__(self, ledger, database=None):
        self.ledger = ledger
        self.db = database or ledger.db

    def current_session(self, conn=None):
        with borrow_connection(self.db, conn) as c:
            row = c.execute("SELECT * FROM register_sessions WHERE closed_at IS NULL "
                            "ORDER BY id DESC LIMIT 1").fetchone()
        return RegisterSession.from_row(row) if row else None

    @property
    def is_open(self):
        return self.current_session() is not None

    def open(self, opening_amount=ZERO, operator=None):
        opening_amount = to_money(opening_amount)
        if opening_amount < ZERO:
            raise ValueError("opening amount must be >= 0")
        with borrow_connection(self.db) as c:
            c.execute("BEGIN IMMEDIATE")
            if c.execute("SELECT 1 FROM register_sessions WHERE closed_at IS NULL").fetchone():
                raise RegisterError("The register is already open.")
            first_seq = self.ledger.last_seq(conn=c) + 1
            cur = c.execute("INSERT INTO register_sessions (opened_at, opening_amount, operator, first_sale_seq) "
                            "VALUES (?, ?, ?, ?)", (now_str(), str(opening_amount), operator, first_seq))
            session_id = cur.lastrowid
        logger.info("register opened (session %s) with %s", session_id, opening_amount)
        self.db.write_audit('register_open', f"Session {session_id} opened with {opening_amount}", username=operator)
        return self.current_session()

    def close(self):
        with borrow_connection(self.db) as c:
            c.execute("BEGIN IMMEDIATE")
            row = c.execute("SELECT * FROM register_sessions WHERE closed_at IS NULL "
                            "ORDER BY id DESC LIMIT 1").fetchone()
            if not row:
                raise RegisterError("The register is already closed.")
            last_seq = self.ledger.last_seq(conn=c)
            c.execute("UPDATE register_sessions SET closed_at = ?, last_sale_seq = ? WHERE id = ?",
                      (now_str(), last_seq, row['id']))
            closed = c.execute("SELECT * FROM register_sessions WHERE id = ?", (row['id'],)).fetchone()
        session = RegisterSession.from_row(closed)
        session.summary = self.summary(session)
        logger.info("register closed (session %s): %s sales, gross %s",
                    session.id, session.summary['sales_count'], session.summary['gross'])
        self.db.write_audit('register_close',
                            f"Session {session.id} closed: {session.summary['sales_count']} sales, "
                            f"expected cash {session.summary['expected_cash']}",
                            username=session.operator)
        return session

    def sessions(self, limit=20):
        with borrow_connection(self.db) as c:
            rows = c.execute("SELECT * FROM register_sessions ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [RegisterSession.from_row(r) for r in rows]

    def summary(self, session):
        sales = self.ledger.in_seq_range(session.first_sale_seq, session.last_sale_seq)
        by_method = {m.value: ZERO for m in PaymentMethod}
        for sale in sales:
            by_method[sale.payment_method.value] += sale.total
        gross = sum((s.total for s in sales), ZERO)
        return {
            'sales_count': len(sales),
            'gross': gross,
            'discounts': sum((s.discount for s in sales), ZERO),
            'by_method': by_method,
            'expected_cash': Decimal(session.opening_amount) + by_method[PaymentMethod.CASH.value],
        }
