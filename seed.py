import argparse
import logging

from catalog import Catalog
from database import DatabaseManager, get_db
from errors import POSError
from settings import LOG_LEVEL, LOW_STOCK_THRESHOLD

logger = logging.getLogger(__name__)

# (id, name, price, category, stock, barcode, description)
INITIAL_PRODUCTS = [
    ("1", "Americano", "2.50", "Drinks", 100, "7501234567890", "Black americano coffee"),
    ("2", "Cappuccino", "3.50", "Drinks", 80, "7501234567891", "Coffee with steamed milk foam"),
    ("3", "Classic Burger", "8.99", "Food", 25, "7501234567892", "Beef burger with lettuce and tomato"),
    ("4", "Margherita Pizza", "12.99", "Food", 15, "7501234567893", "Tomato, mozzarella and basil"),
    ("5", "Cheesecake", "4.99", "Desserts", 20, "7501234567894", "Cheesecake on a biscuit base"),
    ("6", "Tiramisu", "5.99", "Desserts", 5, "7501234567895", "Italian dessert with coffee and mascarpone"),
]


def seed(catalog=None):
    """Insert the initial products that are not in the catalog yet. Returns how many were added."""
    catalog = catalog or Catalog(get_db())
    added = 0
    for pid, name, price, category, stock, barcode, description in INITIAL_PRODUCTS:
        if catalog.get_product(pid) is not None:
            continue
        catalog.add_product(name, price, stock, category, product_id=pid, barcode=barcode, description=description)
        added += 1
    print(f"Catalog seeded ({added} products added).")
    return added


def list_products(catalog):
    print(f"{'ID':<6} {'Name':<24} {'Category':<12} {'Price':>10} {'Stock':>6}")
    print('-' * 62)
    for p in catalog.list_products(active_only=False):
        print(f"{p.id:<6} {p.name:<24} {p.category:<12} {p.unit_price:>10} {p.stock:>6}")


def show_low_stock(catalog, threshold=LOW_STOCK_THRESHOLD):
    low = catalog.low_stock(threshold)
    if not low:
        print(f"No products at or below {threshold} units.")
        return low
    for p in low:
        print(f"{p.id:<6} {p.name:<24} {p.stock:>6} left")
    return low


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed and inspect the register catalog")
    parser.add_argument('--db', help='Path to the SQLite database (defaults to POS_DB_PATH)')
    parser.add_argument('--seed', action='store_true', help='Insert the initial products')
    parser.add_argument('--list', action='store_true', help='List all products')
    parser.add_argument('--low-stock', action='store_true', help='Show low-stock alerts')
    parser.add_argument('--restock', nargs=2, metavar=('PRODUCT_ID', 'QTY'), help='Add stock to a product')
    parser.add_argument('--deactivate', metavar='PRODUCT_ID', help='Withdraw a product from sale')
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    catalog = Catalog(DatabaseManager(args.db) if args.db else get_db())

    try:
        if args.list:
            list_products(catalog)
        elif args.low_stock:
            show_low_stock(catalog)
        elif args.restock:
            pid, qty = args.restock
            balance = catalog.restock(pid, int(qty))
            print(f"{pid} stock is now {balance}.")
        elif args.deactivate:
            catalog.deactivate(args.deactivate)
            print(f"{args.deactivate} withdrawn from sale.")
        else:
            # Default to seeding when no flags provided
            seed(catalog)
    except (POSError, ValueError) as e:
        parser.exit(1, f"error: {e}\n")
    return 0


if __name__ == "__main__":
    main()
