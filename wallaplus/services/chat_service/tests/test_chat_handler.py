"""Tests for Chat Service HTTP handler."""
import json
from unittest.mock import patch

import pytest

from wallaplus.services.chat_service.config import ChatConfig
from wallaplus.services.chat_service.handler import build_store, create_app
from wallaplus.services.chat_service.identity import RequestHeaderIdentityProvider
from wallaplus.services.chat_service.message_store import InMemoryChatStore
from wallaplus.services.chat_service.thread_guard import ThreadGuard
from wallaplus.shared.database import RepositoryError
from wallaplus.shared.utils import configure_pii_salt


BUYER = {"X-User-Id": "buyer_1"}
SELLER = {"X-User-Id": "seller_1"}
STRANGER = {"X-User-Id": "stranger"}


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def store():
    return InMemoryChatStore()


@pytest.fixture
def client(store):
    """Create Flask test client over an in-memory store."""
    guard = ThreadGuard(store=store, identity=RequestHeaderIdentityProvider())
    app = create_app(guard, store)
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client
    guard.close()


@pytest.fixture
def thread_id(client):
    response = client.post(
        '/threads',
        json={'listing_id': 'l1', 'seller_id': 'seller_1'},
        headers=BUYER,
    )
    return json.loads(response.data)['thread_id']


class TestThreads:

    def test_create_thread_is_idempotent(self, client, thread_id):
        response = client.post(
            '/threads',
            json={'listing_id': 'l1', 'seller_id': 'seller_1'},
            headers=BUYER,
        )
        assert json.loads(response.data)['thread_id'] == thread_id

    def test_create_thread_requires_fields(self, client):
        response = client.post('/threads', json={'listing_id': 'l1'}, headers=BUYER)
        assert response.status_code == 400

    def test_cannot_open_thread_with_self(self, client):
        response = client.post(
            '/threads',
            json={'listing_id': 'l1', 'seller_id': 'buyer_1'},
            headers=BUYER,
        )
        assert response.status_code == 400

    def test_list_threads_for_seller(self, client, thread_id):
        data = json.loads(client.get('/threads', headers=SELLER).data)

        assert [t['thread_id'] for t in data['threads']] == [thread_id]
        assert data['threads'][0]['counterpart_id'] == 'buyer_1'
        assert 'Regla de Oro' in data['safety_rule']

    def test_list_threads_requires_sign_in(self, client):
        response = client.get('/threads')
        assert response.status_code == 401
        assert json.loads(response.data)['action'] == 'sign_in'


class TestSendMessage:

    def test_risky_message_gets_warning(self, client, thread_id):
        response = client.post(
            f'/threads/{thread_id}/messages',
            json={'text': 'llamame al 666 11 22 33'},
            headers=BUYER,
        )

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['risk_flag'] is True
        assert [m['type'] for m in data['messages']] == ['text', 'system-warning']
        assert data['messages'][1]['sender_id'] == 'system'

    def test_safe_message_is_single(self, client, thread_id):
        response = client.post(
            f'/threads/{thread_id}/messages',
            json={'text': 'nos vemos en la plaza'},
            headers=BUYER,
        )

        data = json.loads(response.data)
        assert data['risk_flag'] is False
        assert len(data['messages']) == 1

    def test_thread_history_in_order(self, client, thread_id):
        client.post(f'/threads/{thread_id}/messages', json={'text': 'hola'}, headers=BUYER)
        client.post(f'/threads/{thread_id}/messages', json={'text': 'mi mail: a@b.com'}, headers=SELLER)
        client.post(f'/threads/{thread_id}/messages', json={'text': 'vale'}, headers=BUYER)

        data = json.loads(client.get(f'/threads/{thread_id}/messages', headers=BUYER).data)

        assert [(m['sender_id'], m['type']) for m in data['messages']] == [
            ('buyer_1', 'text'),
            ('seller_1', 'text'),
            ('system', 'system-warning'),
            ('buyer_1', 'text'),
        ]

    def test_thread_marked_with_safety_warning(self, client, thread_id):
        client.post(f'/threads/{thread_id}/messages', json={'text': '612345678'}, headers=BUYER)

        thread = json.loads(client.get('/threads', headers=BUYER).data)['threads'][0]
        assert thread['has_safety_warning'] is True
        assert thread['last_message_preview'] == '612345678'

    def test_empty_message_rejected(self, client, thread_id):
        response = client.post(f'/threads/{thread_id}/messages', json={'text': '  '}, headers=BUYER)

        assert response.status_code == 400
        assert json.loads(response.data)['sent'] is False

    def test_missing_identity_returns_401(self, client, thread_id):
        response = client.post(f'/threads/{thread_id}/messages', json={'text': 'hola'})
        assert response.status_code == 401

    def test_non_participant_forbidden(self, client, thread_id):
        response = client.post(f'/threads/{thread_id}/messages', json={'text': 'hola'}, headers=STRANGER)
        assert response.status_code == 403

    def test_unknown_thread_returns_404(self, client):
        response = client.get('/threads/missing/messages', headers=BUYER)
        assert response.status_code == 404

    def test_store_failure_returns_503(self, client, store, thread_id, monkeypatch):
        def broken(thread_id, messages):
            raise RepositoryError("disk full")

        monkeypatch.setattr(store, "append_all", broken)

        response = client.post(f'/threads/{thread_id}/messages', json={'text': 'hola'}, headers=BUYER)

        assert response.status_code == 503
        assert json.loads(response.data)['retryable'] is True

    def test_directory_failure_returns_503(self, client, store, monkeypatch):
        def broken(user_id):
            raise RepositoryError("relation \"chat_threads\" does not exist")

        monkeypatch.setattr(store, "list_threads_for_user", broken)

        response = client.get('/threads', headers=BUYER)

        assert response.status_code == 503
        assert json.loads(response.data)['retryable'] is True

    def test_overlong_message_rejected(self, client, thread_id):
        response = client.post(
            f'/threads/{thread_id}/messages',
            json={'text': '-' * 20000},
            headers=BUYER,
        )

        assert response.status_code == 400
        assert json.loads(response.data)['sent'] is False


class TestLiveScan:

    def test_live_scan(self, client):
        data = json.loads(client.post('/scan/live', json={'text': 'juan@'}).data)
        assert data['risky'] is True

    def test_live_scan_rejects_overlong_text(self, client):
        response = client.post('/scan/live', json={'text': ' ' * 20000})
        assert response.status_code == 400


class TestBuildStore:

    def test_memory_backend(self):
        assert isinstance(build_store(ChatConfig()), InMemoryChatStore)

    def test_postgres_backend_creates_schema(self):
        with patch("wallaplus.services.chat_service.handler.ConnectionManager") as manager, \
                patch("wallaplus.services.chat_service.handler.PostgresChatStore") as store_cls:
            store = build_store(ChatConfig(backend="postgres"))

        store_cls.assert_called_once_with(manager.return_value, preview_length=80)
        store.ensure_schema.assert_called_once_with()
