import logging
import sqlite3
import time
from datetime import datetime

from settings import DB_NAME

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_str(moment=None):
    return (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)


def commit_with_retry(conn, retries=6, initial_delay=0.5):
    """Attempt to commit, retrying on `sqlite3.OperationalError: database is locked`.

    Retries use exponential backoff (initial_delay * 2**attempt).
    """
    last_exc = None
    for attempt in range(retries):
        try:
            conn.commit()
            return
        except sqlite3.OperationalError as e:
            last_exc = e
            msg = str(e).lower()
            if 'locked' in msg or 'busy' in msg:
                delay = initial_delay * (2 ** attempt)
                logger.warning("commit blocked (%s), retrying in %.2fs", e, delay)
                time.sleep(delay)
                continue
            raise
    # If we exhausted retries, re-raise last exception
    raise last_exc


class DatabaseManager:
    def __init__(self, db_name=DB_NAME):
        self.db_name = db_name
        self.check_schema()

    def connect(self):
        # Wait up to 30s for another register's write transaction to finish.
        conn = sqlite3.connect(self.db_name, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def check_schema(self):
        conn = self.connect()
        c = conn.cursor()
        # WAL lets reporting read while a register is committing a sale
        c.execute('PRAGMA journal_mode=WAL')
        c.execute('PRAGMA busy_timeout = 30000')

        # Prices and money columns are stored as TEXT so Decimal values round-trip exactly.
        c.execute('''CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            unit_price TEXT NOT NULL,
            stock INTEGER NOT NULL CHECK (stock >= 0),
            category TEXT NOT NULL DEFAULT '',
            barcode TEXT,
            description TEXT,
            active INTEGER DEFAULT 1
        )''')

        c.execute('''CREATE TABLE IF NOT EXISTS stock_movements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id TEXT NOT NULL,
            change INTEGER NOT NULL,
            balance INTEGER NOT NULL,
            reason TEXT NOT NULL,
            reference TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )''')

        c.execute('''CREATE TABLE IF NOT EXISTS sales (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            sale_datetime TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            tax TEXT NOT NULL,
            discount TEXT NOT NULL,
            total TEXT NOT NULL,
            payment_method TEXT NOT NULL,
            customer_ref TEXT,
            cash_given TEXT,
            change TEXT
        )''')

        c.execute('''CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            unit_price TEXT NOT NULL,
            line_total TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id)
        )''')

        # Sales are append-only: reject any UPDATE or DELETE at the storage level.
        for table in ('sales', 'sale_items'):
            for action in ('UPDATE', 'DELETE'):
                c.execute(f'''CREATE TRIGGER IF NOT EXISTS {table}_no_{action.lower()}
                    BEFORE {action} ON {table}
                    BEGIN
                        SELECT RAISE(ABORT, '{table} are append-only');
                    END''')

        c.execute('''CREATE TABLE IF NOT EXISTS receipts (
            sale_id TEXT PRIMARY KEY,
            png_path TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id)
        )''')

        c.execute('''CREATE TABLE IF NOT EXISTS register_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            opened_at TEXT NOT NULL,
            opening_amount TEXT NOT NULL,
            operator TEXT,
            closed_at TEXT,
            first_sale_seq INTEGER NOT NULL,
            last_sale_seq INTEGER
        )''')

        # Audit logs for register events and catalog adjustments
        c.execute('''CREATE TABLE IF NOT EXISTS audit_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT,
            event_type TEXT NOT NULL,
            detail TEXT,
            created_at TEXT NOT NULL
        )''')

        conn.commit()
        conn.close()

    def write_audit(self, event_type, detail, username=None):
        """Write a row into audit_logs. Audit failures are logged, never raised to the caller."""
        try:
            conn = self.connect()
            try:
                conn.execute("INSERT INTO audit_logs (username, event_type, detail, created_at) VALUES (?, ?, ?, ?)",
                             (username, event_type, detail, now_str()))
                commit_with_retry(conn, retries=3, initial_delay=0.1)
            finally:
                conn.close()
        except sqlite3.Error:
            logger.exception("could not write audit event %s", event_type)

    def audit_events(self, event_type=None, limit=50):
        conn = self.connect()
        try:
            if event_type:
                rows = conn.execute("SELECT * FROM audit_logs WHERE event_type=? ORDER BY id DESC LIMIT ?",
                                    (event_type, limit)).fetchall()
            else:
                rows = conn.execute("SELECT * FROM audit_logs ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()


_default = None


def get_db():
    """Shared DatabaseManager for the application, created on first use."""
    global _default
    if _default is None:
        _default = DatabaseManager()
    return _default
