"""
Threaded concurrency tests for the queue.

Each worker thread runs in its own app context (own session, own pooled
connection) against a temporary SQLite file, the way concurrent requests
would.
"""
import os
import tempfile
import threading
import unittest

from queuepos import create_app
from queuepos.errors import CapacityConflict
from queuepos.extensions import db
from queuepos.models import QueueToken, Sale
from queuepos.services import queue_token_service, settlement_service, shop_service


class QueueConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "queue_concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            shop = shop_service.create_shop("Concurrency Cafe", business_type="Cafe", timezone="UTC")
            self.shop_id = shop.id

            product = shop_service.create_product(
                self.shop_id, sku="CONCUR-1", name="Limited Cake", price_cents=1000,
                track_stock=True, stock_qty=5,
            )
            self.product_id = product.id

            unlimited = shop_service.create_product(
                self.shop_id, sku="CONCUR-2", name="Coffee", price_cents=300,
            )
            self.unlimited_id = unlimited.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, targets):
        threads = [threading.Thread(target=target, args=args) for target, args in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def _create_token(self, product_id, quantity):
        with self.app.app_context():
            token = queue_token_service.create_token(
                self.shop_id, [{"product_id": product_id, "quantity": quantity}]
            )
            return token.id

    def test_token_numbers_unique_under_concurrency(self):
        numbers = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    token = queue_token_service.create_token(
                        self.shop_id, [{"product_id": self.unlimited_id, "quantity": 1}]
                    )
                    with lock:
                        numbers.append(token.token_no)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads([(worker, ()) for _ in range(8)])

        self.assertFalse(errors)
        self.assertEqual(sorted(numbers), list(range(1, 9)))

    def test_concurrent_tokens_never_overbook_stock(self):
        results = []
        lock = threading.Lock()

        def worker(quantity):
            with self.app.app_context():
                try:
                    queue_token_service.create_token(
                        self.shop_id, [{"product_id": self.product_id, "quantity": quantity}]
                    )
                    with lock:
                        results.append(quantity)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        self._run_threads([(worker, (3,)), (worker, (4,))])

        accepted = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(accepted), 1)
        self.assertEqual(len(rejected), 1)
        self.assertIsInstance(rejected[0], CapacityConflict)
        self.assertLessEqual(sum(accepted), 5)

        with self.app.app_context():
            self.assertEqual(db.session.query(QueueToken).count(), 1)

    def test_double_settle_creates_one_sale(self):
        token_id = self._create_token(self.product_id, 2)

        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    result = settlement_service.settle(token_id)
                    with lock:
                        results.append(result)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        self._run_threads([(worker, ()) for _ in range(4)])

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        self.assertEqual(len({r.sale_id for r in results}), 1)
        self.assertEqual(sum(1 for r in results if not r.already_settled), 1)

        with self.app.app_context():
            self.assertEqual(db.session.query(Sale).count(), 1)
            token = db.session.get(QueueToken, token_id)
            self.assertEqual(token.settled_sale_id, results[0].sale_id)
            self.assertEqual(token.status, "DONE")

    def test_concurrent_call_next_hands_out_distinct_tokens(self):
        created = {self._create_token(self.unlimited_id, 1) for _ in range(3)}

        called = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    token = queue_token_service.call_next(self.shop_id)
                    with lock:
                        called.append(token.id if token else None)
                except Exception as exc:
                    with lock:
                        called.append(exc)
                finally:
                    db.session.remove()

        self._run_threads([(worker, ()) for _ in range(4)])

        ids = [c for c in called if isinstance(c, int)]
        self.assertEqual(set(ids), created)
        self.assertEqual(len(ids), 3)
        self.assertEqual(called.count(None), 1)


if __name__ == "__main__":
    unittest.main()
