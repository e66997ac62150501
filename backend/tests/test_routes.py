# Overview: Pytest coverage for the HTTP surface (status codes and response shapes).

"""
API Tests

Checks the route layer's translation of service outcomes:
- not-found (missing, foreign, unknown token) is one identical 404 body
- validation problems are 400, lifecycle conflicts 409
- sign-in codes are never echoed back
"""

from datetime import timedelta

from tradie.models import OneTimeCode
from tradie.services import auth_service, session_service
from tradie.services.capability_tokens import CapabilityToken
from tradie.time_utils import utcnow


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestAuthRoutes:

    def test_request_code_does_not_echo_code(self, client, db_session):
        response = client.post('/api/auth/request-code', json={'email': 'a@x.com'})

        assert response.status_code == 200
        code = db_session.query(OneTimeCode).filter_by(email='a@x.com').one().code
        assert code not in response.get_data(as_text=True)

    def test_request_code_delivers_through_sender(self, app, client, db_session):
        sent = []
        app.config['LOGIN_CODE_SENDER'] = lambda email, code: sent.append((email, code))
        try:
            client.post('/api/auth/request-code', json={'email': 'A@x.com'})
        finally:
            app.config['LOGIN_CODE_SENDER'] = None

        code = db_session.query(OneTimeCode).filter_by(email='a@x.com').one().code
        assert sent == [('a@x.com', code)]

    def test_request_code_invalid_email(self, client, db_session):
        response = client.post('/api/auth/request-code', json={'email': 'nope'})
        assert response.status_code == 400

    def test_verify_code_returns_session(self, client, db_session):
        client.post('/api/auth/request-code', json={'email': 'a@x.com'})
        code = db_session.query(OneTimeCode).filter_by(email='a@x.com').one().code

        response = client.post('/api/auth/verify-code', json={'email': 'a@x.com', 'code': code})

        assert response.status_code == 200
        token = response.json['token']
        assert response.json['account']['email'] == 'a@x.com'

        validated = client.post('/api/auth/validate', headers=auth_headers(token))
        assert validated.status_code == 200

        again = client.post('/api/auth/verify-code', json={'email': 'a@x.com', 'code': code})
        assert again.status_code == 401

    def test_logout_revokes_session(self, client, db_session, token_a):
        assert client.post('/api/auth/logout', headers=auth_headers(token_a)).status_code == 200
        assert client.get('/api/quotes', headers=auth_headers(token_a)).status_code == 401

    def test_logout_all_revokes_every_session(self, client, db_session, owner_a, token_a):
        _, laptop = session_service.create_session(owner_a.id)

        response = client.post('/api/auth/logout-all', headers=auth_headers(token_a))

        assert response.status_code == 200
        assert response.json['revoked'] == 2
        assert client.get('/api/quotes', headers=auth_headers(laptop)).status_code == 401

    def test_password_login_locks_after_failures(self, client, db_session):
        auth_service.create_account('owner@example.com', password='Password123!')

        statuses = [
            client.post('/api/auth/login', json={'email': 'owner@example.com', 'password': 'Wrong123!'}).status_code
            for _ in range(5)
        ]
        assert statuses[:4] == [401, 401, 401, 401]
        assert statuses[4] == 429

        locked = client.post('/api/auth/login', json={'email': 'owner@example.com', 'password': 'Password123!'})
        assert locked.status_code == 429
        assert client.get('/api/auth/lockout-status/owner@example.com').json['locked'] is True


class TestOwnerRoutes:

    def test_requires_session(self, client, db_session):
        assert client.get('/api/quotes').status_code == 401
        assert client.get('/api/invoices', headers=auth_headers('garbage')).status_code == 401

    def test_quote_flow(self, client, db_session, token_a):
        created = client.post('/api/quotes', headers=auth_headers(token_a), json={
            'title': 'Switchboard',
            'line_items': [{'description': 'Labour', 'quantity': 2, 'unit_price_cents': 9000}],
        })
        assert created.status_code == 201
        quote_id = created.json['quote']['id']
        assert created.json['quote']['total_cents'] == 19800
        assert 'acceptance_token' not in created.json['quote']

        sent = client.post(f'/api/quotes/{quote_id}/send', headers=auth_headers(token_a))
        assert sent.status_code == 200
        assert sent.json['quote']['status'] == 'sent'
        assert sent.json['acceptance_token']

        resent = client.post(f'/api/quotes/{quote_id}/send', headers=auth_headers(token_a))
        assert resent.status_code == 409

    def test_validation_error_is_400(self, client, db_session, token_a):
        response = client.post('/api/quotes', headers=auth_headers(token_a), json={'title': 'X', 'number': 'QT-1'})
        assert response.status_code == 400

    def test_foreign_and_missing_are_identical_404(self, client, db_session, token_a, token_b):
        created = client.post('/api/invoices', headers=auth_headers(token_a), json={'title': 'Mine'})
        invoice_id = created.json['invoice']['id']

        foreign = client.get(f'/api/invoices/{invoice_id}', headers=auth_headers(token_b))
        missing = client.get('/api/invoices/999999', headers=auth_headers(token_b))

        assert foreign.status_code == missing.status_code == 404
        assert foreign.get_data() == missing.get_data()

    def test_archive_listing(self, client, db_session, token_a):
        created = client.post('/api/quotes', headers=auth_headers(token_a), json={'title': 'Old job'})
        quote_id = created.json['quote']['id']
        client.post(f'/api/quotes/{quote_id}/archive', headers=auth_headers(token_a))

        active = client.get('/api/quotes', headers=auth_headers(token_a))
        everything = client.get('/api/quotes?include_archived=true', headers=auth_headers(token_a))

        assert active.json['count'] == 0
        assert everything.json['count'] == 1

    def test_schedule_locks_line_items_until_removed(self, client, db_session, token_a):
        created = client.post('/api/invoices', headers=auth_headers(token_a), json={
            'title': 'Solar',
            'line_items': [{'description': 'Panels', 'quantity': 1, 'unit_price_cents': 10000}],
        })
        invoice_id = created.json['invoice']['id']
        client.put(f'/api/invoices/{invoice_id}/payment-schedule', headers=auth_headers(token_a), json={
            'installments': [{'amount_cents': 5500}, {'amount_cents': 5500}],
        })
        extra = {'description': 'Inverter', 'quantity': 1, 'unit_price_cents': 20000}

        locked = client.post(f'/api/invoices/{invoice_id}/line-items', headers=auth_headers(token_a), json=extra)
        removed = client.delete(f'/api/invoices/{invoice_id}/payment-schedule', headers=auth_headers(token_a))
        added = client.post(f'/api/invoices/{invoice_id}/line-items', headers=auth_headers(token_a), json=extra)

        assert locked.status_code == 409
        assert removed.status_code == 200
        assert added.status_code == 201
        detail = client.get(f'/api/invoices/{invoice_id}', headers=auth_headers(token_a))
        assert detail.json['invoice']['payment_schedule'] is None


class TestPublicRoutes:

    def _sent_quote_token(self, client, token):
        created = client.post('/api/quotes', headers=auth_headers(token), json={'title': 'Fence'})
        quote_id = created.json['quote']['id']
        return client.post(f'/api/quotes/{quote_id}/send', headers=auth_headers(token)).json['acceptance_token']

    def test_accept_then_view(self, client, db_session, token_a):
        link = self._sent_quote_token(client, token_a)

        accepted = client.post(f'/api/public/quotes/{link}/accept', json={'accepted_by': 'Jo Client'})
        viewed = client.get(f'/api/public/quotes/{link}')

        assert accepted.status_code == 200
        assert viewed.json['quote']['status'] == 'accepted'
        assert viewed.json['quote']['accepted_by'] == 'Jo Client'
        assert 'owner_id' not in viewed.json['quote']

    def test_accept_requires_name(self, client, db_session, token_a):
        link = self._sent_quote_token(client, token_a)
        assert client.post(f'/api/public/quotes/{link}/accept', json={}).status_code == 400

    def test_unknown_and_malformed_tokens_are_identical_404(self, client, db_session, token_a):
        self._sent_quote_token(client, token_a)

        unknown = client.get(f'/api/public/quotes/{CapabilityToken.generate()}')
        malformed = client.get('/api/public/quotes/0O0O')
        invoice = client.get(f'/api/public/invoices/{CapabilityToken.generate()}')

        assert unknown.status_code == malformed.status_code == invoice.status_code == 404
        assert unknown.get_data() == malformed.get_data() == invoice.get_data()

    def test_strict_mode_conflict_is_409(self, client, db_session, token_a, strict_transitions):
        link = self._sent_quote_token(client, token_a)
        client.post(f'/api/public/quotes/{link}/decline', json={'reason': 'Too dear'})

        response = client.post(f'/api/public/quotes/{link}/accept', json={'accepted_by': 'Jo'})
        assert response.status_code == 409

    def test_lookup_failure_is_500(self, client, db_session, token_a, monkeypatch):
        link = self._sent_quote_token(client, token_a)

        def broken(_token):
            raise RuntimeError("database went away")

        monkeypatch.setattr('tradie.services.quote_service.get_quote_by_token', broken)
        monkeypatch.setattr('tradie.services.invoice_service.get_invoice_by_token', broken)

        quote = client.get(f'/api/public/quotes/{link}')
        invoice = client.get(f'/api/public/invoices/{CapabilityToken.generate()}')

        assert quote.status_code == invoice.status_code == 500
        assert quote.json == {'error': 'Internal server error'}

    def test_pay_invoice(self, client, db_session, token_a):
        created = client.post('/api/invoices', headers=auth_headers(token_a), json={
            'title': 'Repairs',
            'line_items': [{'description': 'Parts', 'quantity': 1, 'unit_price_cents': 5000}],
        })
        invoice_id = created.json['invoice']['id']
        link = client.post(f'/api/invoices/{invoice_id}/send', headers=auth_headers(token_a)).json['payment_token']

        paid = client.post(f'/api/public/invoices/{link}/pay', json={'payment_method': 'card'})

        assert paid.status_code == 200
        assert paid.json['invoice']['status'] == 'paid'
        assert paid.json['receipt']['amount_cents'] == 5500

        receipts = client.get('/api/invoices/receipts', headers=auth_headers(token_a))
        assert len(receipts.json['items']) == 1


class TestSystemRoutes:

    def test_health(self, client, db_session):
        response = client.get('/api/system/health')

        assert response.status_code == 200
        assert response.json['checks']['database']['status'] == 'healthy'

    def test_health_degrades_on_maintenance_backlog(self, client, db_session):
        auth_service.request_code('late@x.com')
        db_session.query(OneTimeCode).update({'expires_at': utcnow() - timedelta(minutes=1)})
        db_session.commit()

        response = client.get('/api/system/health')

        assert response.status_code == 200
        assert response.json['status'] == 'degraded'
        assert response.json['checks']['maintenance']['details']['expired_login_codes'] == 1

    def test_version(self, client, db_session):
        response = client.get('/api/system/version')

        assert response.status_code == 200
        assert response.json['server_time'].endswith('Z')
