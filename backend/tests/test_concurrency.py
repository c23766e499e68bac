# Overview: Thread-based concurrency tests for checkout and code allocation.

"""
Concurrency tests against a real SQLite file (in-memory databases share a
single connection and cannot show lock behaviour).
"""
import os
import tempfile
import threading
import unittest
from datetime import date

from retail_pos import create_app
from retail_pos.extensions import db
from retail_pos.models import Category, Customer, Order, OrderLine, Product, User
from retail_pos.services import checkout_service, products_service
from retail_pos.services.products_service import InsufficientStock


IMAGE = {"data": "iVBORw0KGgo=", "content_type": "image/png"}


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "INVOICE_DIR": os.path.join(self.tmpdir.name, "invoices"),
            "CHECKOUT_INVENTORY_MODE": "atomic",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            category = Category(name="Concurrency")
            db.session.add(category)
            staff = User(fullname="Concurrent Cashier", email="concurrent@example.com")
            db.session.add(staff)
            db.session.commit()
            self.category_id = category.id
            self.staff_id = staff.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _product(self, quantity, name="Concurrent Product"):
        with self.app.app_context():
            product = products_service.create_product(patch={
                "name": name,
                "import_price": 5_000,
                "retail_price": 10_000,
                "category_id": self.category_id,
                "quantity": quantity,
                "images": [IMAGE],
            })
            return product.id

    def _run(self, workers):
        threads = [threading.Thread(target=w) for w in workers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def _buyer(self, product_id, phone, results, lock):
        def worker():
            with self.app.app_context():
                try:
                    checkout_service.checkout(
                        cart=[{"product_id": product_id, "quantity": 1}],
                        customer_phone=phone,
                        customer_name="Buyer",
                        customer_address="Ha Noi",
                        amount_paid=10_000,
                        employee_id=self.staff_id,
                    )
                    with lock:
                        results.append("sold")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()
        return worker

    def test_last_unit_sold_once(self):
        product_id = self._product(quantity=1)
        results = []
        lock = threading.Lock()

        self._run([self._buyer(product_id, f"09000000{i:02d}", results, lock) for i in range(5)])

        sold = [r for r in results if r == "sold"]
        rejected = [r for r in results if isinstance(r, InsufficientStock)]
        self.assertEqual(len(sold), 1, results)
        self.assertEqual(len(rejected), 4, results)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, product_id).quantity, 0)
            self.assertEqual(db.session.query(Order).count(), 1)

    def test_stock_is_conserved(self):
        product_id = self._product(quantity=4)
        results = []
        lock = threading.Lock()

        self._run([self._buyer(product_id, f"09100000{i:02d}", results, lock) for i in range(8)])

        sold = sum(1 for r in results if r == "sold")
        self.assertEqual(sold, 4, results)

        with self.app.app_context():
            remaining = db.session.get(Product, product_id).quantity
            line_units = sum(l.quantity for l in db.session.query(OrderLine).filter_by(product_id=product_id))
            self.assertEqual(remaining, 0)
            self.assertEqual(line_units + remaining, 4)

    def test_same_new_customer_created_once(self):
        product_id = self._product(quantity=10)
        results = []
        lock = threading.Lock()

        self._run([self._buyer(product_id, "0987654321", results, lock) for _ in range(4)])

        self.assertEqual(results, ["sold"] * 4)
        with self.app.app_context():
            self.assertEqual(db.session.query(Customer).filter_by(phone="0987654321").count(), 1)
            self.assertEqual(db.session.query(Order).count(), 4)

    def test_product_codes_unique_under_concurrency(self):
        created = []
        errors = []
        lock = threading.Lock()
        today = date(2026, 10, 19)

        def worker():
            with self.app.app_context():
                try:
                    product = products_service.create_product(patch={
                        "name": "Parallel",
                        "import_price": 1_000,
                        "retail_price": 2_000,
                        "category_id": self.category_id,
                        "quantity": 1,
                        "images": [IMAGE],
                    }, today=today)
                    with lock:
                        created.append(product.code)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run([worker for _ in range(8)])

        self.assertFalse(errors)
        self.assertEqual(len(created), 8)
        self.assertEqual(len(set(created)), 8)
        self.assertEqual(sorted(created), [f"191026{i:05d}" for i in range(1, 9)])


if __name__ == "__main__":
    unittest.main()
