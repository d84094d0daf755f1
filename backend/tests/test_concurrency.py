# Overview: Threaded ledger tests against a file-backed database.

"""
Concurrency tests for the credit ledger, webhook ingress and wholesale
staging.

Each worker runs in its own app context (own session), like concurrent
requests. Postings that lose every retry may fail; the balance must still
equal the sum of the ledger rows and the postings that succeeded.
"""
import json
import os
import tempfile
import threading
import unittest
from datetime import timedelta

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from sampleledger import create_app
from sampleledger.extensions import db
from sampleledger.models import (
    Brand,
    BrandPartnership,
    Conversion,
    CreditTransaction,
    InventoryTransaction,
    Product,
    Store,
    StoreInventory,
    WholesaleOrder,
)
from sampleledger.models.inventory import TX_WHOLESALE_ORDERED
from sampleledger.services import credit_service, inventory_service, webhook_service, wholesale_service
from sampleledger.services.concurrency import run_with_retry
from sampleledger.services.inventory_service import OrderLine
from sampleledger.services.sample_service import record_sample
from sampleledger.time_utils import utcnow


SECRET = "concurrency-secret"
DOMAIN = "race.myshopify.com"


class LedgerConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "LEDGER_RETRY_ATTEMPTS": 8,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            brand = Brand(
                name="Race Brand",
                code="RB",
                shop_domain=DOMAIN,
                webhook_secret=SECRET,
                attribution_window_days=30,
                commission_rate=10,
            )
            store_a = Store(store_code="SID-A", name="Store A")
            store_b = Store(store_code="SID-B", name="Store B")
            db.session.add_all([brand, store_a, store_b])
            db.session.commit()

            pa = BrandPartnership(store_id=store_a.id, brand_id=brand.id, credit_balance_cents=0)
            pb = BrandPartnership(store_id=store_b.id, brand_id=brand.id, credit_balance_cents=0)
            db.session.add_all([pa, pb])
            db.session.commit()

            record_sample(
                brand_id=brand.id,
                store_id=store_a.id,
                phone="+15551230000",
                sampled_at=utcnow() - timedelta(days=3),
            )

            self.brand_id = brand.id
            self.partnership_ids = (pa.id, pb.id)
            self.store_ids = (store_a.id, store_b.id)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, targets):
        """targets: list of (callable, args). Returns (results, errors)."""
        results = []
        errors = []
        lock = threading.Lock()

        def worker(func, args):
            with self.app.app_context():
                try:
                    value = func(*args)
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(func, args)) for func, args in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def _post(self, partnership_id, amount):
        posting = credit_service.post_credit(partnership_id=partnership_id, amount_cents=amount)
        return posting.partnership_id, posting.applied_cents

    def _assert_conserved(self, partnership_id, expected_balance=None):
        with self.app.app_context():
            check = credit_service.verify_partnership_balance(partnership_id)
            self.assertTrue(check["consistent"], check)
            self.assertGreaterEqual(check["balance_cents"], 0)
            if expected_balance is not None:
                self.assertEqual(check["balance_cents"], expected_balance)

    def _assert_contention_only(self, errors):
        for exc in errors:
            self.assertIsInstance(exc, (OperationalError, StaleDataError))

    def test_parallel_postings_to_different_partnerships(self):
        pa, pb = self.partnership_ids
        targets = [(self._post, (pa, 100)) for _ in range(5)] + [(self._post, (pb, 250)) for _ in range(5)]

        results, errors = self._run_workers(targets)

        self._assert_contention_only(errors)
        for pid in (pa, pb):
            applied = sum(amount for owner, amount in results if owner == pid)
            self._assert_conserved(pid, expected_balance=applied)

    def test_parallel_earn_and_deduct_on_one_partnership(self):
        pa, _ = self.partnership_ids
        with self.app.app_context():
            credit_service.post_credit(partnership_id=pa, amount_cents=1000)

        targets = []
        for i in range(10):
            amount = 300 if i % 2 == 0 else -400
            targets.append((self._post, (pa, amount)))

        results, errors = self._run_workers(targets)

        self._assert_contention_only(errors)
        applied = sum(amount for _, amount in results)
        self._assert_conserved(pa, expected_balance=1000 + applied)

    def test_concurrent_duplicate_webhook_credits_once(self):
        payload = {
            "id": 424242,
            "name": "#424242",
            "total_price": "50.00",
            "created_at": utcnow().isoformat() + "Z",
            "customer": {"id": 31337, "phone": "+15551230000"},
            "line_items": [],
        }
        raw_body = json.dumps(payload).encode("utf-8")
        signature = webhook_service.compute_signature(SECRET, raw_body)

        def deliver():
            outcome = webhook_service.process_webhook(
                shop_domain=DOMAIN,
                topic="orders/paid",
                signature=signature,
                raw_body=raw_body,
                tag_lookup=None,
            )
            return outcome.status

        results, errors = self._run_workers([(deliver, ()) for _ in range(4)])

        self._assert_contention_only(errors)
        with self.app.app_context():
            self.assertEqual(db.session.query(Conversion).count(), 1)
            self.assertEqual(db.session.query(CreditTransaction).count(), 1)
        self._assert_conserved(self.partnership_ids[0], expected_balance=500)

    def _add_box_product(self):
        with self.app.app_context():
            db.session.add(Product(
                brand_id=self.brand_id,
                sku="RB-GUM-BX",
                name="Race Gummies (box of 6)",
                units_per_box=6,
                price_cents=3000,
            ))
            db.session.commit()

    def test_concurrent_staging_of_new_sku_keeps_one_row(self):
        self._add_box_product()
        store_id = self.store_ids[0]

        def stage(external_order_id):
            def _op():
                result = inventory_service.expand_wholesale_lines(
                    self.brand_id, [OrderLine(sku="RB-GUM-BX", quantity=1)]
                )
                staged = inventory_service.stage_order_once(
                    store_id=store_id,
                    external_order_id=external_order_id,
                    staged=result.staged,
                    tx_type=TX_WHOLESALE_ORDERED,
                )
                db.session.commit()
                return staged

            return run_with_retry(_op)

        results, errors = self._run_workers([(stage, (f"90{i}",)) for i in range(4)])

        self._assert_contention_only(errors)
        with self.app.app_context():
            rows = db.session.query(StoreInventory).filter_by(store_id=store_id, product_sku="RB-GUM").all()
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0].quantity_incoming, 6 * sum(1 for staged in results if staged))
            self.assertEqual(db.session.query(InventoryTransaction).count(), len(results))

    def test_concurrent_order_creation_gets_distinct_numbers(self):
        self._add_box_product()
        store_id = self.store_ids[0]

        def create():
            order = wholesale_service.create_wholesale_order(store_id=store_id, cart={"RB-GUM-BX": 1})[0]
            return order.order_number

        results, errors = self._run_workers([(create, ()) for _ in range(4)])

        self._assert_contention_only(errors)
        self.assertEqual(len(set(results)), len(results))
        with self.app.app_context():
            self.assertEqual(db.session.query(WholesaleOrder).count(), len(results))


if __name__ == "__main__":
    unittest.main()
