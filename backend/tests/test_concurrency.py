"""
Concurrent checkout against a file-backed SQLite database.

Each worker runs in its own thread and app context, so each gets its own
session and connection, like separate requests would.
"""
import os
import tempfile
import threading
import unittest

from kasir import create_app
from kasir.errors import InsufficientStockError
from kasir.extensions import db
from kasir.models import Product, StockMovement, Transaction
from kasir.services import catalog_service, inventory_service, ledger_service, sales_service


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LOG_LEVEL": "WARNING",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = catalog_service.create_product(patch={
                "name": "Concurrent Product",
                "barcode": "CONCUR-1",
                "price_cents": 1000,
                "stock_quantity": 5,
            })
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, target, count):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    outcome = target()
                except Exception as exc:
                    outcome = exc
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_sales_never_oversell(self):
        def sell_one():
            sale = sales_service.create_sale(
                [{"product_id": self.product_id, "quantity": 1}], "cash", 1000,
            )
            return sale.transaction_number

        results = self._run_workers(sell_one, 8)

        numbers = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if not isinstance(r, str)]
        self.assertEqual(len(numbers), 5)
        self.assertEqual(len(set(numbers)), 5)
        self.assertTrue(all(isinstance(f, InsufficientStockError) for f in failures), failures)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 0)
            self.assertEqual(db.session.query(Transaction).count(), 5)
            self.assertEqual(
                db.session.query(StockMovement).filter_by(movement_type="out").count(), 5
            )
            self.assertTrue(ledger_service.reconcile(self.product_id)["balanced"])

    def test_concurrent_adjustments_all_land(self):
        def add_two():
            return inventory_service.adjust_stock(self.product_id, 2, "recount").stock_quantity

        results = self._run_workers(add_two, 6)

        self.assertFalse([r for r in results if isinstance(r, Exception)], results)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 17)
            self.assertTrue(ledger_service.reconcile(self.product_id)["balanced"])


if __name__ == "__main__":
    unittest.main()
