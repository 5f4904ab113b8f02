import logging
import sys

from PyQt5.QtWidgets import QApplication

from catalog import Catalog
from controller import MainController
from database import get_db
from ledger import Ledger
from register import CashRegister
from settings import LOG_LEVEL
import seed


def main():
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = QApplication(sys.argv)

    # Prepare DB (create schema and seed if empty) before creating the GUI
    db = get_db()
    catalog = Catalog(db)
    ledger = Ledger(db)
    if not catalog.list_products(active_only=False):
        logging.getLogger(__name__).info("empty catalog, seeding initial products")
        seed.seed(catalog)

    window = MainController(catalog, ledger, CashRegister(ledger))
    window.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
