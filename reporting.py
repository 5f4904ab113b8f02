from collections import OrderedDict
from datetime import datetime, time, timedelta

from models import PaymentMethod
from pricing import ZERO, to_money


def day_bounds(day):
    return datetime.combine(day, time.min), datetime.combine(day, time(23, 59, 59))


class SalesReport:
    """Read-only views over the ledger for the insights panel and the daily close."""

    def __init__(self, ledger):
        self.ledger = ledger

    def sales(self, start, end):
        return self.ledger.between(start, end)

    def summary(self, start, end):
        sales = self.sales(start, end)
        income = sum((s.total for s in sales), ZERO)
        customers = {s.customer_ref for s in sales if s.customer_ref}
        span_days = max(1, (end.date() - start.date()).days + 1)
        return {
            'sales_count': len(sales),
            'income': income,
            'subtotal': sum((s.subtotal for s in sales), ZERO),
            'tax': sum((s.tax for s in sales), ZERO),
            'discounts': sum((s.discount for s in sales), ZERO),
            'average': to_money(income / len(sales)) if sales else ZERO,
            'average_per_day': to_money(income / span_days),
            'unique_customers': len(customers),
            'items_sold': sum(s.item_count for s in sales),
        }

    def daily_totals(self, start, end):
        """[(YYYY-MM-DD, total)] for days with at least one sale, oldest first."""
        totals = OrderedDict()
        for sale in self.sales(start, end):
            day = sale.timestamp.strftime("%Y-%m-%d")
            totals[day] = totals.get(day, ZERO) + sale.total
        return list(totals.items())

    def top_products(self, start, end, limit=10):
        """[(product_id, name, quantity, revenue)] ranked by quantity sold."""
        agg = {}
        for sale in self.sales(start, end):
            for line in sale.lines:
                name, qty, revenue = agg.get(line.product_id, (line.name, 0, ZERO))
                agg[line.product_id] = (line.name, qty + line.quantity, revenue + line.line_total)
        ranked = sorted(agg.items(), key=lambda kv: (-kv[1][1], -kv[1][2], kv[0]))
        return [(pid, name, qty, revenue) for pid, (name, qty, revenue) in ranked[:limit]]

    def by_payment_method(self, start, end):
        totals = OrderedDict((m.value, ZERO) for m in PaymentMethod)
        for sale in self.sales(start, end):
            totals[sale.payment_method.value] += sale.total
        return totals

    def daily_close(self, day):
        """End-of-day close: summary, payment breakdown and the day's sales."""
        start, end = day_bounds(day)
        return {
            'date': day.strftime("%Y-%m-%d"),
            'summary': self.summary(start, end),
            'by_method': self.by_payment_method(start, end),
            'sales': self.sales(start, end),
        }

    def last_days(self, days=30, now=None):
        end = (now or datetime.now()).replace(hour=23, minute=59, second=59, microsecond=0)
        start = (end - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0)
        return start, end
