import os
from decimal import Decimal, InvalidOperation

from PyQt5.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QLineEdit, QListWidget, QListWidgetItem,
    QHeaderView, QTableWidget, QTableWidgetItem, QDialog, QMessageBox, QSizePolicy, QComboBox,
    QDoubleSpinBox, QFormLayout
)
from PyQt5.QtCore import Qt, pyqtSignal
from PyQt5.QtGui import QFont, QPixmap

from models import PaymentMethod
from pricing import to_money
from settings import CURRENCY_SYMBOL, STORE_NAME


def money(value):
    return f"{CURRENCY_SYMBOL} {value:,.2f}"


class RegisterMain(QWidget):
    # Signals to Controller
    category_selected = pyqtSignal(str)
    search_query = pyqtSignal(str)
    item_added = pyqtSignal(str)  # product id
    update_qty = pyqtSignal(str, int)  # product id, new quantity
    remove_item = pyqtSignal(str)
    discount_changed = pyqtSignal(str)
    checkout_requested = pyqtSignal()
    clear_cart_requested = pyqtSignal()
    insights_clicked = pyqtSignal()
    register_toggle_requested = pyqtSignal()

    def __init__(self):
        super().__init__()
        self.setObjectName("RegisterMain")
        main_layout = QVBoxLayout()

        # 1. Top Bar
        top_layout = QHBoxLayout()
        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search by name or barcode...")
        self.search_input.textChanged.connect(self.search_query.emit)
        self.category_combo = QComboBox()
        self.category_combo.currentIndexChanged.connect(self._on_category)
        self.lbl_register = QLabel()
        self.btn_register = QPushButton()
        self.btn_register.clicked.connect(self.register_toggle_requested.emit)
        btn_insights = QPushButton("Insights")
        btn_insights.clicked.connect(self.insights_clicked.emit)
        top_layout.addWidget(QLabel(f"<b>{STORE_NAME}</b>"))
        top_layout.addWidget(self.search_input, 1)
        top_layout.addWidget(self.category_combo)
        top_layout.addWidget(self.lbl_register)
        top_layout.addWidget(self.btn_register)
        top_layout.addWidget(btn_insights)

        # 2. Content: products | cart
        content_layout = QHBoxLayout()
        self.product_list = QListWidget()
        self.product_list.itemActivated.connect(self._on_product_activated)
        self.product_list.itemClicked.connect(self._on_product_activated)

        self.cart_panel = QWidget()
        self.cart_panel.setObjectName("CartPanel")
        self.cart_panel.setMinimumWidth(440)
        self.cart_panel.setSizePolicy(QSizePolicy.Preferred, QSizePolicy.Expanding)
        cart_layout = QVBoxLayout()

        lbl_cart = QLabel("Shopping Cart")
        lbl_cart.setFont(QFont("Segoe UI", 16, QFont.Bold))
        self.lbl_count = QLabel("0 items")

        self.cart_table = QTableWidget()
        self.cart_table.setColumnCount(4)
        self.cart_table.setHorizontalHeaderLabels(["Item", "Qty", "Line", "Action"])
        self.cart_table.horizontalHeader().setSectionResizeMode(0, QHeaderView.Stretch)
        self.cart_table.horizontalHeader().setSectionResizeMode(1, QHeaderView.ResizeToContents)
        self.cart_table.horizontalHeader().setSectionResizeMode(2, QHeaderView.ResizeToContents)
        self.cart_table.horizontalHeader().setSectionResizeMode(3, QHeaderView.Fixed)
        self.cart_table.setColumnWidth(3, 60)
        self.cart_table.verticalHeader().setVisible(False)

        form = QFormLayout()
        self.input_customer = QLineEdit()
        self.input_customer.setPlaceholderText("Walk-in customer")
        self.payment_combo = QComboBox()
        self.payment_combo.addItem("Select payment method...", None)
        for method in PaymentMethod:
            self.payment_combo.addItem(method.label, method.value)
        self.input_discount = QDoubleSpinBox()
        self.input_discount.setMinimum(0)
        self.input_discount.setMaximum(1000000)
        self.input_discount.setDecimals(2)
        self.input_discount.valueChanged.connect(lambda v: self.discount_changed.emit(f"{v:.2f}"))
        form.addRow("Customer:", self.input_customer)
        form.addRow("Payment:", self.payment_combo)
        form.addRow("Discount:", self.input_discount)

        self.lbl_subtotal = QLabel()
        self.lbl_tax = QLabel()
        self.lbl_discount = QLabel()
        self.lbl_total = QLabel()
        self.lbl_total.setStyleSheet("font-size: 18pt; font-weight: bold; color: #27AE60;")

        btns = QHBoxLayout()
        self.btn_clear = QPushButton("Clear")
        self.btn_clear.clicked.connect(self.clear_cart_requested.emit)
        self.btn_checkout = QPushButton("COMPLETE SALE")
        self.btn_checkout.setObjectName("CheckoutBtn")
        self.btn_checkout.clicked.connect(self.checkout_requested.emit)
        btns.addWidget(self.btn_clear)
        btns.addWidget(self.btn_checkout, 1)

        cart_layout.addWidget(lbl_cart)
        cart_layout.addWidget(self.lbl_count)
        cart_layout.addWidget(self.cart_table)
        cart_layout.addLayout(form)
        cart_layout.addWidget(self.lbl_subtotal)
        cart_layout.addWidget(self.lbl_tax)
        cart_layout.addWidget(self.lbl_discount)
        cart_layout.addWidget(self.lbl_total)
        cart_layout.addLayout(btns)
        self.cart_panel.setLayout(cart_layout)

        content_layout.addWidget(self.product_list, 1)
        content_layout.addWidget(self.cart_panel, 0)
        main_layout.addLayout(top_layout)
        main_layout.addLayout(content_layout)
        self.setLayout(main_layout)

        self.set_register_state(False)

    def _on_category(self, index):
        self.category_selected.emit(self.category_combo.itemData(index) or "")

    def _on_product_activated(self, item):
        if item.flags() & Qt.ItemIsEnabled:
            self.item_added.emit(item.data(Qt.UserRole))

    def populate_categories(self, categories):
        self.category_combo.blockSignals(True)
        self.category_combo.clear()
        self.category_combo.addItem("All categories", "")
        for cat in categories:
            self.category_combo.addItem(cat, cat)
        self.category_combo.blockSignals(False)

    def update_product_list(self, products):
        self.product_list.clear()
        for p in products:
            item = QListWidgetItem(f"{p.name}  -  {money(p.unit_price)}  (stock {p.stock})")
            item.setData(Qt.UserRole, p.id)
            if p.stock <= 0:
                # Sold out products cannot be added
                item.setFlags(item.flags() & ~Qt.ItemIsEnabled)
            self.product_list.addItem(item)

    def update_cart_display(self, cart_rows, totals):
        """cart_rows: dicts with id, name, price, quantity, stock. totals: subtotal, tax, discount, due."""
        self.cart_table.setRowCount(0)
        self.cart_table.setRowCount(len(cart_rows))
        for row, item in enumerate(cart_rows):
            self.cart_table.setItem(row, 0, QTableWidgetItem(f"{item['name']}\n{money(item['price'])} each"))

            qty_widget = QWidget()
            qty_lay = QHBoxLayout()
            qty_lay.setContentsMargins(0, 0, 0, 0)
            btn_minus = QPushButton("-")
            btn_minus.setFixedSize(32, 32)
            btn_minus.clicked.connect(lambda ch, i=item['id'], q=item['quantity']: self.update_qty.emit(i, q - 1))
            lbl_q = QLabel(str(item['quantity']))
            lbl_q.setFixedWidth(36)
            lbl_q.setAlignment(Qt.AlignCenter)
            btn_plus = QPushButton("+")
            btn_plus.setFixedSize(32, 32)
            btn_plus.setEnabled(item['quantity'] < item['stock'])
            btn_plus.clicked.connect(lambda ch, i=item['id'], q=item['quantity']: self.update_qty.emit(i, q + 1))
            qty_lay.addWidget(btn_minus)
            qty_lay.addWidget(lbl_q)
            qty_lay.addWidget(btn_plus)
            qty_widget.setLayout(qty_lay)
            self.cart_table.setCellWidget(row, 1, qty_widget)

            self.cart_table.setItem(row, 2, QTableWidgetItem(f"{item['price'] * item['quantity']:,.2f}"))

            btn_rem = QPushButton("x")
            btn_rem.setStyleSheet("background-color: #E74C3C;")
            btn_rem.clicked.connect(lambda ch, i=item['id']: self.remove_item.emit(i))
            self.cart_table.setCellWidget(row, 3, btn_rem)

        self.lbl_count.setText(f"{sum(i['quantity'] for i in cart_rows)} items")
        self.lbl_subtotal.setText(f"Subtotal: {money(totals['subtotal'])}")
        self.lbl_tax.setText(f"Tax: {money(totals['tax'])}")
        self.lbl_discount.setText(f"Discount: -{money(totals['discount'])}")
        self.lbl_total.setText(f"Total: {money(totals['due'])}")

    def selected_payment_method(self):
        return self.payment_combo.currentData()

    def customer_ref(self):
        return self.input_customer.text().strip() or None

    def reset_checkout_fields(self):
        self.input_customer.clear()
        self.payment_combo.setCurrentIndex(0)
        self.input_discount.blockSignals(True)
        self.input_discount.setValue(0)
        self.input_discount.blockSignals(False)

    def set_register_state(self, is_open):
        self.lbl_register.setText("Register: OPEN" if is_open else "Register: CLOSED")
        self.lbl_register.setStyleSheet("color: #27AE60;" if is_open else "color: #E74C3C;")
        self.btn_register.setText("Close Register" if is_open else "Open Register")
        for w in (self.product_list, self.cart_table, self.btn_checkout, self.btn_clear):
            w.setEnabled(is_open)


class PaymentDialog(QDialog):
    """Collects the cash handed over by the customer; accepted only when it covers the total."""

    def __init__(self, total_amount):
        super().__init__()
        self.setWindowTitle("Cash Payment")
        self.setFixedSize(420, 260)
        self.total = total_amount
        self.cash_given = None

        layout = QVBoxLayout()
        lbl_info = QLabel(f"Total to Pay: {money(self.total)}")
        lbl_info.setStyleSheet("font-size: 20pt; font-weight: bold;")
        lbl_info.setAlignment(Qt.AlignCenter)

        self.input_cash = QLineEdit()
        self.input_cash.setPlaceholderText("Enter Cash Amount")
        self.input_cash.setStyleSheet("font-size: 16pt; padding: 8px;")

        self.btn_pay = QPushButton("CONFIRM PAYMENT")
        self.btn_pay.setStyleSheet("background-color: #27AE60; font-size: 16pt; padding: 10px;")
        self.btn_pay.clicked.connect(self.validate)
        self.btn_cancel = QPushButton("Cancel")
        self.btn_cancel.clicked.connect(self.reject)

        layout.addWidget(lbl_info)
        layout.addWidget(self.input_cash)
        layout.addSpacing(12)
        layout.addWidget(self.btn_pay)
        layout.addWidget(self.btn_cancel)
        self.setLayout(layout)

    def validate(self):
        try:
            cash = to_money(Decimal(self.input_cash.text().strip()))
        except InvalidOperation:
            QMessageBox.warning(self, "Error", "Invalid amount.")
            return
        if cash < self.total:
            QMessageBox.warning(self, "Error", "Insufficient cash.")
            return
        self.cash_given = cash
        self.accept()


class ReceiptDialog(QDialog):
    def __init__(self, png_path=None, ticket=None):
        super().__init__()
        self.setWindowTitle("Receipt")
        self.setMinimumSize(420, 640)
        layout = QVBoxLayout()

        pm = QPixmap(png_path) if png_path and os.path.exists(png_path) else None
        if pm is not None and not pm.isNull():
            lbl = QLabel()
            lbl.setPixmap(pm.scaled(380, 520, Qt.KeepAspectRatio, Qt.SmoothTransformation))
            layout.addWidget(lbl)
        elif ticket:
            lbl = QLabel(ticket)
            lbl.setFont(QFont("Monospace", 9))
            layout.addWidget(lbl)
        else:
            layout.addWidget(QLabel("Receipt preview not available"))

        btn_close = QPushButton("Close")
        btn_close.clicked.connect(self.accept)
        layout.addWidget(btn_close)
        self.setLayout(layout)
