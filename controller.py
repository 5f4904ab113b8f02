import logging
import sqlite3

from PyQt5.QtWidgets import QMainWindow, QMessageBox, QStackedWidget, QDialog, QInputDialog

from cart import Cart
from checkout import SaleCommitEngine
from datavisualization import VizPanel
from errors import RegisterError, SaleError
from models import PaymentMethod
from receipt import ReceiptGenerator, ticket_text
from reporting import SalesReport
from view import RegisterMain, PaymentDialog, ReceiptDialog, money

logger = logging.getLogger(__name__)


class MainController(QMainWindow):
    """Register window. Holds the session's cart and forwards UI actions to
    the injected catalog, ledger and register services."""

    def __init__(self, catalog, ledger, register):
        super().__init__()
        self.setWindowTitle("Register POS")
        self.resize(1100, 720)

        self.catalog = catalog
        self.ledger = ledger
        self.register = register
        self.cart = Cart(catalog)
        self.engine = SaleCommitEngine(catalog, ledger, register=register)
        self.report = SalesReport(ledger)
        self.current_category = ""
        self.search_text = ""

        self.stack = QStackedWidget()
        self.kiosk = RegisterMain()
        self.viz = VizPanel(self.report, catalog, register)
        self.stack.addWidget(self.kiosk)
        self.stack.addWidget(self.viz)
        self.setCentralWidget(self.stack)

        # Connect Signals
        self.kiosk.category_selected.connect(self.filter_category)
        self.kiosk.search_query.connect(self.filter_search)
        self.kiosk.item_added.connect(self.add_to_cart)
        self.kiosk.update_qty.connect(self.update_cart_qty)
        self.kiosk.remove_item.connect(self.remove_from_cart)
        self.kiosk.discount_changed.connect(self.set_discount)
        self.kiosk.clear_cart_requested.connect(self.clear_cart)
        self.kiosk.checkout_requested.connect(self.complete_sale)
        self.kiosk.register_toggle_requested.connect(self.toggle_register)
        self.kiosk.insights_clicked.connect(self.show_insights)
        self.viz.back_clicked.connect(lambda: self.stack.setCurrentWidget(self.kiosk))

        # Initial Load
        self.load_categories()
        self.load_items()
        self.kiosk.set_register_state(self.register.is_open)
        self.update_cart_ui()

    def load_categories(self):
        self.kiosk.populate_categories(self.catalog.list_categories())

    def load_items(self):
        products = self.catalog.list_products(category=self.current_category or None,
                                              search=self.search_text or None)
        self.kiosk.update_product_list(products)

    def filter_category(self, category):
        self.current_category = category
        self.load_items()

    def filter_search(self, text):
        self.search_text = text.strip()
        self.load_items()

    # --- CART LOGIC ---
    def add_to_cart(self, product_id):
        product = self.catalog.sellable_product(product_id)
        if product is None:
            return
        before = self.cart.quantity_of(product_id)
        self.cart.add_item(product)
        if self.cart.quantity_of(product_id) == before:
            QMessageBox.warning(self, "Stock Limit", "Not enough stock available.")
            return
        self.update_cart_ui()

    def update_cart_qty(self, product_id, quantity):
        self.cart.set_quantity(product_id, quantity)
        self.update_cart_ui()

    def remove_from_cart(self, product_id):
        self.cart.remove_item(product_id)
        self.update_cart_ui()

    def set_discount(self, amount):
        self.cart.set_discount(amount)
        self.update_cart_ui()

    def clear_cart(self):
        if self.cart.is_empty:
            return
        resp = QMessageBox.question(self, "Clear Cart", "Are you sure you want to clear the cart?",
                                    QMessageBox.Yes | QMessageBox.No)
        if resp != QMessageBox.Yes:
            return
        self.cart.clear()
        self.kiosk.reset_checkout_fields()
        self.update_cart_ui()

    def update_cart_ui(self):
        rows = [{'id': p.id, 'name': p.name, 'price': p.unit_price, 'quantity': qty, 'stock': p.stock}
                for p, qty in self.cart.priced_lines()]
        totals = self.engine.preview(self.cart)
        self.kiosk.update_cart_display(rows, {'subtotal': totals.subtotal, 'tax': totals.tax,
                                              'discount': totals.discount, 'due': totals.total})

    # --- CHECKOUT ---
    def complete_sale(self):
        method = self.kiosk.selected_payment_method()
        cash_given = None
        if PaymentMethod.parse(method) is PaymentMethod.CASH and not self.cart.is_empty:
            dlg = PaymentDialog(self.engine.preview(self.cart).total)
            if dlg.exec_() != QDialog.Accepted:
                return
            cash_given = dlg.cash_given
        try:
            sale = self.engine.commit(self.cart, method, self.kiosk.customer_ref(), cash_given=cash_given)
        except SaleError as e:
            QMessageBox.warning(self, "Sale not completed", e.message)
            self.update_cart_ui()
            return

        # The sale is committed from here on; receipt problems only warn.
        try:
            png = ReceiptGenerator.generate(sale)
            self.ledger.attach_receipt(sale.id, png)
        except (OSError, sqlite3.Error) as e:
            logger.exception("receipt for sale %s failed", sale.id)
            QMessageBox.warning(self, "Receipt Error",
                                f"Sale #{sale.id} was recorded, but the receipt could not be saved:\n{e}")
            png = None

        msg = f"Sale #{sale.id} for {money(sale.total)} recorded."
        if sale.change is not None:
            msg += f"\nChange: {money(sale.change)}"
        QMessageBox.information(self, "Sale completed", msg)
        self.show_receipt(sale, png)

        self.kiosk.reset_checkout_fields()
        self.update_cart_ui()
        self.load_items()  # Refresh stock display
        self.warn_low_stock(sale)

    def show_receipt(self, sale, png_path):
        ReceiptDialog(png_path=png_path, ticket=ticket_text(sale)).exec_()

    def warn_low_stock(self, sale):
        sold = {line.product_id for line in sale.lines}
        low = [p for p in self.catalog.low_stock() if p.id in sold]
        if low:
            lines = "\n".join(f"{p.name}: {p.stock} left" for p in low)
            QMessageBox.information(self, "Low stock", f"Restock soon:\n{lines}")

    # --- REGISTER ---
    def toggle_register(self):
        try:
            if self.register.is_open:
                self.close_register()
            else:
                self.open_register()
        except RegisterError as e:
            QMessageBox.warning(self, "Register", str(e))
        self.kiosk.set_register_state(self.register.is_open)

    def open_register(self):
        amount, ok = QInputDialog.getDouble(self, "Open Register", "Opening cash amount:", 0, 0, 1000000, 2)
        if not ok:
            return
        self.register.open(f"{amount:.2f}")

    def close_register(self):
        session = self.register.close()
        s = session.summary
        by_method = "\n".join(f"  {m}: {money(v)}" for m, v in s['by_method'].items())
        QMessageBox.information(
            self, "Register closed",
            f"Sales: {s['sales_count']}\nGross: {money(s['gross'])}\n{by_method}\n"
            f"Expected cash in drawer: {money(s['expected_cash'])}")

    def show_insights(self):
        self.viz.refresh_charts()
        self.stack.setCurrentWidget(self.viz)
