# Overview: Threaded races against a file-backed SQLite database.

"""
Concurrency Tests

Each worker runs in its own app context (own session, own connection), so
the database is the only thing the threads share.
"""

import os
import tempfile
import threading
import unittest

from tradie import create_app
from tradie.extensions import db
from tradie.models import Account, Invoice, Receipt
from tradie.services import auth_service, invoice_service, quote_service
from tradie.services.auth_service import InvalidOrAlreadyUsedCode
from tradie.services.sequence_service import parse_ordinal
from tradie.time_utils import utcnow


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            owner = Account(email="owner@example.com", username="owner", email_verified=True)
            db.session.add(owner)
            db.session.commit()
            self.owner_id = owner.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    outcome = target()
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_code_is_consumed_exactly_once(self):
        with self.app.app_context():
            code = auth_service.request_code("race@example.com")

        results = self._run_threads(
            lambda: auth_service.verify_and_resolve_account("race@example.com", code).id,
            4,
        )

        successes = [r for r in results if isinstance(r, int)]
        failures = [r for r in results if isinstance(r, InvalidOrAlreadyUsedCode)]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 3)

        with self.app.app_context():
            accounts = db.session.query(Account).filter_by(email="race@example.com").count()
        self.assertEqual(accounts, 1)

    def test_document_sequence_concurrency(self):
        with self.app.app_context():
            quote_service.create_quote(self.owner_id, {"title": "First"})

        results = self._run_threads(
            lambda: quote_service.create_quote(self.owner_id, {"title": "Concurrent"}).number,
            6,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        self.assertFalse(errors)
        year = utcnow().year
        ordinals = sorted(parse_ordinal(number, year) for number in results)
        self.assertEqual(ordinals, list(range(2, 8)))

    def test_concurrent_payments_apply_once(self):
        with self.app.app_context():
            invoice = invoice_service.create_invoice(self.owner_id, {"title": "Race"}, line_items=[
                {"description": "Work", "quantity": 1, "unit_price_cents": 10000},
            ])
            invoice, token = invoice_service.send_invoice(invoice.id, self.owner_id)
            invoice_id = invoice.id

        results = self._run_threads(lambda: invoice_service.pay_invoice_by_token(token), 3)

        errors = [r for r in results if isinstance(r, Exception)]
        self.assertFalse(errors)
        with self.app.app_context():
            invoice = db.session.get(Invoice, invoice_id)
            self.assertEqual(invoice.status, "paid")
            self.assertEqual(invoice.amount_paid_cents, invoice.total_cents)
            self.assertEqual(db.session.query(Receipt).count(), 1)


if __name__ == "__main__":
    unittest.main()
