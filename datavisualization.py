import logging
import sqlite3
from datetime import datetime

from PyQt5.QtWidgets import QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QTabWidget, QMessageBox, QDateEdit
from PyQt5.QtCore import QDate, pyqtSignal
from matplotlib.backends.backend_qt5agg import FigureCanvasQTAgg as FigureCanvas
from matplotlib.figure import Figure
import matplotlib.pyplot as plt

from settings import CURRENCY_SYMBOL

logger = logging.getLogger(__name__)


class VizPanel(QWidget):
    """Insights panel with four tabs:
    - Daily sales (line)
    - Top products (quantity, horizontal bar)
    - Payment methods (pie)
    - Insights (KPIs, low stock, recent register sessions)
    """
    back_clicked = pyqtSignal()

    def __init__(self, report, catalog, register=None):
        super().__init__()
        self.report = report
        self.catalog = catalog
        self.register = register
        layout = QVBoxLayout()

        nav = QHBoxLayout()
        btn_back = QPushButton("Back to Register")
        btn_back.clicked.connect(lambda: self.back_clicked.emit())
        nav.addWidget(btn_back)
        nav.addStretch()
        layout.addLayout(nav)

        controls = QHBoxLayout()
        start, end = report.last_days(30)
        self.date_from = QDateEdit(QDate(start.year, start.month, start.day))
        self.date_from.setCalendarPopup(True)
        self.date_to = QDateEdit(QDate(end.year, end.month, end.day))
        self.date_to.setCalendarPopup(True)
        btn_refresh = QPushButton("Refresh")
        btn_refresh.clicked.connect(self.refresh_charts)
        controls.addWidget(QLabel("From:"))
        controls.addWidget(self.date_from)
        controls.addWidget(QLabel("To:"))
        controls.addWidget(self.date_to)
        controls.addWidget(btn_refresh)

        tabs = QTabWidget()
        self.chart1 = FigureCanvas(Figure(figsize=(5, 3)))
        self.chart2 = FigureCanvas(Figure(figsize=(5, 3)))
        self.chart3 = FigureCanvas(Figure(figsize=(5, 3)))
        self.chart4 = FigureCanvas(Figure(figsize=(5, 3)))
        tabs.addTab(self.chart1, "Daily Sales")
        tabs.addTab(self.chart2, "Top Products")
        tabs.addTab(self.chart3, "Payment Methods")
        tabs.addTab(self.chart4, "Insights")

        layout.addLayout(controls)
        layout.addWidget(tabs)
        self.setLayout(layout)

    def date_range(self):
        start = datetime.strptime(self.date_from.date().toString("yyyy-MM-dd"), "%Y-%m-%d")
        end = datetime.strptime(self.date_to.date().toString("yyyy-MM-dd") + " 23:59:59", "%Y-%m-%d %H:%M:%S")
        return start, end

    def refresh_charts(self):
        start, end = self.date_range()
        try:
            daily = self.report.daily_totals(start, end)
            top = self.report.top_products(start, end)
            methods = self.report.by_payment_method(start, end)
            summary = self.report.summary(start, end)
            low = self.catalog.low_stock()
            sessions = self.register.sessions(limit=5) if self.register else []
        except sqlite3.Error as e:
            logger.exception("could not load insights data")
            QMessageBox.warning(self, 'Data Error', f'Could not load visualization data:\n{e}')
            return

        ax1 = self._fresh_axes(self.chart1)
        if daily:
            ax1.plot([d for d, _ in daily], [float(t) for _, t in daily], marker='o', color='#1f77b4')
            ax1.set_title('Daily Sales')
            ax1.set_xlabel('Date')
            ax1.set_ylabel(f'Total Sales ({CURRENCY_SYMBOL})')
            ax1.tick_params(axis='x', rotation=45)
        else:
            ax1.text(0.5, 0.5, 'No sales in range', ha='center', va='center')

        ax2 = self._fresh_axes(self.chart2)
        if top:
            names = [name for _, name, _, _ in top]
            qtys = [qty for _, _, qty, _ in top]
            ax2.barh(list(reversed(names)), list(reversed(qtys)), color='#2ca02c')
            ax2.set_title('Top Products (by quantity)')
            ax2.set_xlabel('Quantity Sold')
        else:
            ax2.text(0.5, 0.5, 'No products sold in range', ha='center', va='center')

        ax3 = self._fresh_axes(self.chart3)
        paid = [(m, float(v)) for m, v in methods.items() if v > 0]
        if paid:
            ax3.pie([v for _, v in paid], labels=[m for m, _ in paid], autopct='%1.1f%%',
                    colors=plt.cm.Pastel1.colors)
            ax3.set_title('Revenue by Payment Method')
        else:
            ax3.text(0.5, 0.5, 'No revenue data in range', ha='center', va='center')

        ax4 = self._fresh_axes(self.chart4)
        ax4.axis('off')
        ax4.text(0.01, 0.99, '\n'.join(self.insight_lines(start, end, summary, top, low, sessions)),
                 va='top', ha='left', family='monospace', fontsize=9)

        for chart in (self.chart1, self.chart2, self.chart3, self.chart4):
            chart.draw()

    def insight_lines(self, start, end, summary, top, low, sessions):
        lines = [
            f"Date range: {start:%Y-%m-%d} -> {end:%Y-%m-%d}",
            f"Total sales: {CURRENCY_SYMBOL} {summary['income']:,.2f}",
            f"Sales count: {summary['sales_count']}",
            f"Avg sale value: {CURRENCY_SYMBOL} {summary['average']:,.2f}",
            f"Avg sales / day: {CURRENCY_SYMBOL} {summary['average_per_day']:,.2f}",
            f"Discounts given: {CURRENCY_SYMBOL} {summary['discounts']:,.2f}",
            f"Unique customers: {summary['unique_customers']}",
            "",
            "Top products:",
        ]
        if top:
            lines += [f" - {name}: {qty} units, {CURRENCY_SYMBOL} {rev:,.2f}" for _, name, qty, rev in top[:5]]
        else:
            lines.append(" - No product sales")
        lines += ["", "Low stock:"]
        if low:
            lines += [f" - {p.name} ({p.id}): {p.stock} left" for p in low]
        else:
            lines.append(" - None")
        if sessions:
            lines += ["", "Recent register sessions:"]
            for s in sessions:
                state = f"closed {s.closed_at}" if s.closed_at else "open"
                lines.append(f" - #{s.id} opened {s.opened_at} ({state})")
        return lines

    @staticmethod
    def _fresh_axes(canvas):
        fig = canvas.figure
        fig.clear()
        return fig.add_subplot(111)
