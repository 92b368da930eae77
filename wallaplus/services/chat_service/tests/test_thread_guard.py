"""Tests for ThreadGuard and ComposeSession.

Covers the banner state machine, warning injection order, and the rule
that a failed send never clears what the user typed.
"""
import threading

import pytest

from wallaplus.services.chat_service.config import ChatConfig
from wallaplus.services.chat_service.errors import (
    PersistenceFailure,
    Unauthenticated,
    ValidationError,
)
from wallaplus.services.chat_service.identity import StaticIdentityProvider
from wallaplus.services.chat_service.message_store import InMemoryChatStore
from wallaplus.services.chat_service.thread_guard import (
    ComposeState,
    SendOutcome,
    ThreadGuard,
)
from wallaplus.services.safety_service.config import SYSTEM_WARNING_TEXT
from wallaplus.shared.database import NotFoundError, RepositoryError
from wallaplus.shared.models import SYSTEM_SENDER_ID, MessageType
from wallaplus.shared.utils import configure_pii_salt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


class FailingStore(InMemoryChatStore):
    """Store whose appends fail until told otherwise."""

    def __init__(self):
        super().__init__()
        self.fail = True

    def append_all(self, thread_id, messages):
        if self.fail:
            raise RepositoryError("connection reset")
        return super().append_all(thread_id, messages)


class BlockingStore(InMemoryChatStore):
    """Store whose appends wait on an event, to simulate a hung backend."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def append_all(self, thread_id, messages):
        self.release.wait(timeout=5)
        return super().append_all(thread_id, messages)


@pytest.fixture
def identity():
    return StaticIdentityProvider("buyer_1")


@pytest.fixture
def store():
    return InMemoryChatStore()


@pytest.fixture
def thread(store):
    return store.create_thread("listing_1", "buyer_1", "seller_1")


@pytest.fixture
def guard(store, identity):
    guard = ThreadGuard(store=store, identity=identity)
    yield guard
    guard.close()


class TestComposeBanner:
    """Live scan drives the Idle/Warning banner on every keystroke."""

    def test_starts_idle(self, guard, thread):
        session = guard.open_session(thread.id)
        assert session.state == ComposeState.IDLE
        assert session.banner_visible is False
        assert session.text == ""

    def test_digit_run_shows_banner(self, guard, thread):
        session = guard.open_session(thread.id)
        typed = "llámame al 666123456"

        visible = [session.on_input(typed[:i]) for i in range(1, len(typed) + 1)]

        assert visible[-1] is True
        assert visible[-2] is False  # eight digits so far
        assert session.state == ComposeState.WARNING

    def test_banner_clears_on_first_non_matching_keystroke(self, guard, thread):
        session = guard.open_session(thread.id)
        session.on_input("escríbeme a juan@")
        assert session.banner_visible is True

        assert session.on_input("escríbeme a juan") is False
        assert session.state == ComposeState.IDLE

    def test_no_hysteresis(self, guard, thread):
        session = guard.open_session(thread.id)
        states = []
        for text in ["a@", "a", "a@", "", "666123456", "66612345"]:
            session.on_input(text)
            states.append(session.state)

        assert states == [
            ComposeState.WARNING,
            ComposeState.IDLE,
            ComposeState.WARNING,
            ComposeState.IDLE,
            ComposeState.WARNING,
            ComposeState.IDLE,
        ]


class TestSendOutcome:
    """Final scan decides the risk flag and the injected warning."""

    def test_risky_send_appends_message_then_warning(self, guard, store, thread):
        session = guard.open_session(thread.id)
        session.on_input("llamame al 666 11 22 33")

        outcome = session.send()

        messages = store.list(thread.id)
        assert len(messages) == 2
        user_msg, warning = messages
        assert user_msg.type == MessageType.TEXT
        assert user_msg.sender_id == "buyer_1"
        assert user_msg.content == "llamame al 666 11 22 33"
        assert user_msg.risk_flag is True
        assert warning.type == MessageType.SYSTEM_WARNING
        assert warning.sender_id == SYSTEM_SENDER_ID
        assert warning.content == SYSTEM_WARNING_TEXT
        assert warning.risk_flag is False
        assert outcome.messages == (user_msg, warning)
        assert outcome.risk_flag is True

    def test_safe_send_appends_single_message(self, guard, store, thread):
        session = guard.open_session(thread.id)
        session.on_input("nos vemos en la plaza")

        outcome = session.send()

        messages = store.list(thread.id)
        assert len(messages) == 1
        assert messages[0].risk_flag is False
        assert messages[0].type == MessageType.TEXT
        assert outcome.warning is None
        assert outcome.messages == (messages[0],)

    def test_live_risky_but_final_safe(self, guard, store, thread):
        """A landline trips the banner but is stored unflagged."""
        session = guard.open_session(thread.id)
        assert session.on_input("ref 931234567") is True

        outcome = session.send()

        assert outcome.risk_flag is False
        assert len(store.list(thread.id)) == 1

    def test_send_resets_compose_state(self, guard, thread):
        session = guard.open_session(thread.id)
        session.on_input("mi email es ana@correo.es")
        assert session.banner_visible is True

        session.send()

        assert session.text == ""
        assert session.state == ComposeState.IDLE

    def test_warning_follows_its_message_across_sends(self, guard, store, thread):
        session = guard.open_session(thread.id)
        for text in ["hola", "mi tel 612345678", "¿vale?", "ana@correo.es"]:
            session.on_input(text)
            session.send()

        kinds = [(m.type, m.risk_flag) for m in store.list(thread.id)]
        assert kinds == [
            (MessageType.TEXT, False),
            (MessageType.TEXT, True),
            (MessageType.SYSTEM_WARNING, False),
            (MessageType.TEXT, False),
            (MessageType.TEXT, True),
            (MessageType.SYSTEM_WARNING, False),
        ]

    def test_text_is_stored_as_typed(self, guard, store, thread):
        guard.send_message(thread.id, "  hola  ")
        assert store.list(thread.id)[0].content == "  hola  "

    def test_outcome_to_dict(self, guard, thread):
        outcome = guard.send_message(thread.id, "666123456")
        data = outcome.to_dict()
        assert data["risk_flag"] is True
        assert [m["type"] for m in data["messages"]] == ["text", "system-warning"]


class TestEmptySend:

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_session_send_is_noop(self, guard, store, thread, text):
        session = guard.open_session(thread.id)
        session.on_input(text)

        assert session.send() is None
        assert store.list(thread.id) == []
        assert session.text == text
        assert session.state == ComposeState.IDLE

    def test_guard_raises_validation_error(self, guard, thread):
        with pytest.raises(ValidationError):
            guard.send_message(thread.id, "   ")


class TestMessageLength:

    def test_overlong_text_rejected_before_storing(self, store, identity, thread):
        guard = ThreadGuard(store=store, identity=identity, config=ChatConfig(max_message_length=20))

        with pytest.raises(ValidationError):
            guard.send_message(thread.id, "a" * 21)

        assert store.list(thread.id) == []
        guard.close()

    def test_limit_is_inclusive(self, store, identity, thread):
        guard = ThreadGuard(store=store, identity=identity, config=ChatConfig(max_message_length=20))

        outcome = guard.send_message(thread.id, "a" * 20)

        assert outcome.message.content == "a" * 20
        guard.close()

    def test_long_separator_run_rejected_by_default(self, guard, store, thread):
        with pytest.raises(ValidationError):
            guard.send_message(thread.id, "-" * 20000)

        assert store.list(thread.id) == []

    def test_session_keeps_overlong_text(self, store, identity, thread):
        guard = ThreadGuard(store=store, identity=identity, config=ChatConfig(max_message_length=20))
        session = guard.open_session(thread.id)
        session.on_input("x" * 21)

        with pytest.raises(ValidationError):
            session.send()

        assert session.text == "x" * 21
        assert session.sending is False
        guard.close()

    def test_config_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            ChatConfig(max_message_length=0)


class TestSendFailures:

    def test_unauthenticated_keeps_text(self, guard, store, identity, thread):
        identity.sign_out()
        session = guard.open_session(thread.id)
        session.on_input("mi tel 666123456")

        with pytest.raises(Unauthenticated):
            session.send()

        assert session.text == "mi tel 666123456"
        assert session.state == ComposeState.WARNING
        assert store.list(thread.id) == []

    def test_system_subject_is_not_a_user(self, store, thread):
        guard = ThreadGuard(store=store, identity=StaticIdentityProvider(SYSTEM_SENDER_ID))
        with pytest.raises(Unauthenticated):
            guard.send_message(thread.id, "hola")
        guard.close()

    def test_persistence_failure_keeps_text_and_banner(self, identity):
        store = FailingStore()
        thread = store.create_thread("listing_1", "buyer_1", "seller_1")
        guard = ThreadGuard(store=store, identity=identity)
        session = guard.open_session(thread.id)
        session.on_input("escríbeme a ana@correo.es")

        with pytest.raises(PersistenceFailure) as excinfo:
            session.send()

        assert isinstance(excinfo.value.cause, RepositoryError)
        assert session.text == "escríbeme a ana@correo.es"
        assert session.state == ComposeState.WARNING
        assert session.sending is False

        # manual retry succeeds once the store recovers
        store.fail = False
        outcome = session.send()
        assert outcome.risk_flag is True
        assert session.text == ""
        assert len(store.list(thread.id)) == 2
        guard.close()

    def test_failed_risky_send_stores_neither_message(self, identity):
        store = FailingStore()
        thread = store.create_thread("listing_1", "buyer_1", "seller_1")
        guard = ThreadGuard(store=store, identity=identity)

        with pytest.raises(PersistenceFailure):
            guard.send_message(thread.id, "666123456")

        assert store.list(thread.id) == []
        guard.close()

    def test_timeout_surfaces_as_persistence_failure(self, identity):
        store = BlockingStore()
        thread = store.create_thread("listing_1", "buyer_1", "seller_1")
        guard = ThreadGuard(
            store=store,
            identity=identity,
            config=ChatConfig(send_timeout_seconds=0.05),
        )
        session = guard.open_session(thread.id)
        session.on_input("hola")

        with pytest.raises(PersistenceFailure):
            session.send()

        assert session.text == "hola"
        store.release.set()
        guard.close()

    def test_queued_sends_are_dropped_after_timeout(self, identity):
        store = BlockingStore()
        thread = store.create_thread("listing_1", "buyer_1", "seller_1")
        guard = ThreadGuard(
            store=store,
            identity=identity,
            config=ChatConfig(send_timeout_seconds=0.1),
        )

        # more sends than send workers: the last two never leave the queue
        for i in range(6):
            with pytest.raises(PersistenceFailure):
                guard.send_message(thread.id, f"hola {i}")

        store.release.set()
        guard.close(wait=True)

        stored = [m.content for m in store.list(thread.id)]
        assert "hola 4" not in stored
        assert "hola 5" not in stored

    def test_unknown_thread_raises_not_found(self, guard):
        with pytest.raises(NotFoundError):
            guard.send_message("missing", "hola")


class TestReentrantSend:

    def test_second_send_while_in_flight_is_ignored(self, identity):
        results = []

        class ReentrantStore(InMemoryChatStore):
            def append_all(self, thread_id, messages):
                # a second press of the send button while the first is outstanding
                results.append(session.send())
                return super().append_all(thread_id, messages)

        store = ReentrantStore()
        thread = store.create_thread("listing_1", "buyer_1", "seller_1")
        guard = ThreadGuard(store=store, identity=identity)
        session = guard.open_session(thread.id)
        session.on_input("hola")

        outcome = session.send()

        assert results == [None]
        assert isinstance(outcome, SendOutcome)
        assert len(store.list(thread.id)) == 1
        guard.close()

    def test_keystrokes_during_send_are_kept(self, identity):

        class TypingStore(InMemoryChatStore):
            def append_all(self, thread_id, messages):
                # the user keeps typing while the first message is in flight
                session.on_input("y mi número es 666123456")
                return super().append_all(thread_id, messages)

        store = TypingStore()
        thread = store.create_thread("listing_1", "buyer_1", "seller_1")
        guard = ThreadGuard(store=store, identity=identity)
        session = guard.open_session(thread.id)
        session.on_input("hola")

        outcome = session.send()

        assert outcome.message.content == "hola"
        assert session.text == "y mi número es 666123456"
        assert session.state == ComposeState.WARNING
        guard.close()


class TestScanPassThrough:

    def test_guard_exposes_scans(self, guard):
        assert guard.scan_live("a@") is True
        assert guard.scan_final("a@") is False
        assert guard.scan_final("Llámame al 666123456") is True
