"""Chat Service HTTP handler.

Every message send goes through ThreadGuard, so risky messages get their
risk flag and system-warning no matter which client sent them.

Error mapping:
    ValidationError    -> 400 (the UI ignores it)
    Unauthenticated    -> 401 with action "sign_in"
    not a participant  -> 403
    unknown thread     -> 404
    PersistenceFailure -> 503, retryable by the user
    RepositoryError    -> 503, retryable by the user
"""
import logging
import os
from typing import Optional

from flask import Flask, jsonify, request

from wallaplus.services.safety_service import SAFETY_RULE_TEXT
from wallaplus.shared.database import ConnectionManager, DatabaseConfig, NotFoundError, RepositoryError
from wallaplus.shared.utils import configure_pii_salt
from .config import ChatConfig
from .errors import PersistenceFailure, Unauthenticated, ValidationError
from .identity import IdentityProvider, RequestHeaderIdentityProvider
from .message_store import InMemoryChatStore, ThreadDirectory
from .postgres_store import PostgresChatStore
from .thread_guard import ThreadGuard

logger = logging.getLogger(__name__)


def build_store(config: ChatConfig):
    """Construct the store named by CHAT_BACKEND.

    The PostgreSQL backend creates its tables on first start.
    """
    if config.backend == "postgres":
        store = PostgresChatStore(
            ConnectionManager(DatabaseConfig.from_env()),
            preview_length=config.preview_length,
        )
        store.ensure_schema()
        return store
    return InMemoryChatStore(preview_length=config.preview_length)


def create_app(
    guard: ThreadGuard,
    directory: ThreadDirectory,
    identity: Optional[IdentityProvider] = None,
) -> Flask:
    """Build the chat Flask app around an already-wired guard and store.

    Args:
        guard: ThreadGuard over the message store
        directory: Thread lookup (usually the same object as the store)
        identity: Request identity source; defaults to guard.identity
    """
    app = Flask(__name__)
    identity = identity or guard.identity

    def current_subject() -> str:
        current = identity.current()
        if current is None:
            raise Unauthenticated("Sign in required")
        return current.subject

    def participant_thread(thread_id: str, subject: str):
        thread = directory.get_thread(thread_id)
        if thread is None:
            raise NotFoundError(f"thread {thread_id} not found")
        if subject not in thread.participants():
            return thread, (jsonify({"error": "Not a participant of this thread"}), 403)
        return thread, None

    @app.errorhandler(Unauthenticated)
    def handle_unauthenticated(e):
        return jsonify({"error": "unauthenticated", "action": "sign_in"}), 401

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(PersistenceFailure)
    def handle_persistence_failure(e):
        return jsonify({"error": str(e), "retryable": True}), 503

    @app.errorhandler(RepositoryError)
    def handle_repository_error(e):
        logger.error(
            "CHAT_STORE_UNAVAILABLE",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Chat storage unavailable", "retryable": True}), 503

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "healthy",
            "service": "chat-service",
            "scanner_version": guard.scanner.pattern_version,
        }), 200

    @app.route("/threads", methods=["GET"])
    def list_threads():
        subject = current_subject()
        summaries = directory.list_threads_for_user(subject)
        return jsonify({
            "threads": [s.to_dict() for s in summaries],
            "safety_rule": SAFETY_RULE_TEXT,
        }), 200

    @app.route("/threads", methods=["POST"])
    def create_thread():
        subject = current_subject()
        data = request.get_json(silent=True) or {}
        listing_id = data.get("listing_id")
        seller_id = data.get("seller_id")
        if not listing_id or not seller_id:
            logger.warning("THREAD_REQUEST_INVALID", extra={"reason": "missing_fields"})
            return jsonify({"error": "listing_id and seller_id are required"}), 400

        try:
            thread = directory.create_thread(listing_id, subject, seller_id)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        return jsonify({"thread_id": thread.id}), 200

    @app.route("/threads/<thread_id>/messages", methods=["GET"])
    def list_messages(thread_id: str):
        subject = current_subject()
        _, forbidden = participant_thread(thread_id, subject)
        if forbidden is not None:
            return forbidden

        messages = guard.store.list(thread_id)
        return jsonify({"messages": [m.to_dict() for m in messages]}), 200

    @app.route("/threads/<thread_id>/messages", methods=["POST"])
    def send_message(thread_id: str):
        subject = current_subject()
        _, forbidden = participant_thread(thread_id, subject)
        if forbidden is not None:
            return forbidden

        data = request.get_json(silent=True) or {}
        text = data.get("text")
        if not isinstance(text, str):
            text = ""

        try:
            outcome = guard.send_message(thread_id, text)
        except ValidationError as e:
            return jsonify({"error": str(e), "sent": False}), 400

        return jsonify(outcome.to_dict()), 201

    @app.route("/scan/live", methods=["POST"])
    def scan_live():
        data = request.get_json(silent=True) or {}
        text = data.get("text")
        if not isinstance(text, str):
            return jsonify({"error": "Missing required field: text"}), 400
        if len(text) > guard.config.max_message_length:
            return jsonify({"error": f"text exceeds {guard.config.max_message_length} characters"}), 400
        return jsonify({"risky": guard.scan_live(text)}), 200

    logger.info(
        "CHAT_APP_CREATED",
        extra={"directory": type(directory).__name__}
    )
    return app


def _app_from_env() -> Flask:
    configure_pii_salt(os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars"))
    config = ChatConfig.from_env()
    store = build_store(config)
    guard = ThreadGuard(store=store, identity=RequestHeaderIdentityProvider(), config=config)
    return create_app(guard, store)


app = _app_from_env()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8002"))
    app.run(host="0.0.0.0", port=port, debug=False)
