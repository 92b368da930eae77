"""Marketplace HTTP handler: listings, users and reviews."""
import logging
import os
from typing import Optional

from flask import Flask, jsonify, request

from wallaplus.services.chat_service.errors import Unauthenticated, ValidationError
from wallaplus.services.chat_service.identity import RequestHeaderIdentityProvider
from wallaplus.shared.utils import configure_pii_salt
from .seed import seed_demo_data
from .store import MarketplaceStore

logger = logging.getLogger(__name__)


def create_app(store: MarketplaceStore) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(Unauthenticated)
    def handle_unauthenticated(e):
        return jsonify({"error": "unauthenticated", "action": "sign_in"}), 401

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e)}), 400

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "healthy", "service": "marketplace-service"}), 200

    @app.route("/auth/register", methods=["POST"])
    def register():
        data = request.get_json(silent=True) or {}
        user = store.register(
            name=str(data.get("name", "")),
            email=str(data.get("email", "")),
            neighborhood=str(data.get("neighborhood", "")),
        )
        return jsonify(user.to_dict()), 201

    @app.route("/auth/login", methods=["POST"])
    def login():
        data = request.get_json(silent=True) or {}
        user = store.login(str(data.get("email", "")))
        if user is None:
            return jsonify({"error": "Unknown email"}), 404
        return jsonify(user.to_dict()), 200

    @app.route("/listings", methods=["GET"])
    def browse():
        listings = store.browse(
            search=request.args.get("q"),
            category=request.args.get("category"),
            neighborhood=request.args.get("neighborhood"),
        )
        return jsonify({"listings": [l.to_dict() for l in listings]}), 200

    @app.route("/listings", methods=["POST"])
    def create_listing():
        data = request.get_json(silent=True) or {}
        listing = store.create_listing(
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            price=data.get("price"),
            category=str(data.get("category", "")),
            neighborhood=str(data.get("neighborhood", "")),
            images=data.get("images") or [],
        )
        return jsonify(listing.to_dict()), 201

    @app.route("/listings/<listing_id>", methods=["GET"])
    def get_listing(listing_id: str):
        listing = store.get_listing(listing_id)
        if listing is None:
            return jsonify({"error": "Listing not found"}), 404
        return jsonify(listing.to_dict()), 200

    @app.route("/listings/<listing_id>/buy", methods=["POST"])
    def buy(listing_id: str):
        if not store.buy(listing_id):
            return jsonify({"error": "Listing not found"}), 404
        return jsonify({"status": "sold"}), 200

    @app.route("/users/<user_id>", methods=["GET"])
    def profile(user_id: str):
        user = store.user_profile(user_id)
        if user is None:
            return jsonify({"error": "User not found"}), 404
        return jsonify(user.to_dict()), 200

    @app.route("/users/<user_id>/reviews", methods=["GET"])
    def reviews(user_id: str):
        return jsonify({"reviews": [r.to_dict() for r in store.reviews_for(user_id)]}), 200

    @app.route("/users/<user_id>/reviews", methods=["POST"])
    def add_review(user_id: str):
        data = request.get_json(silent=True) or {}
        review = store.add_review(
            target_user_id=user_id,
            rating=data.get("rating"),
            comment=str(data.get("comment", "")),
        )
        return jsonify(review.to_dict()), 201

    return app


def _app_from_env(seed: Optional[bool] = None) -> Flask:
    configure_pii_salt(os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars"))
    store = MarketplaceStore(identity=RequestHeaderIdentityProvider())
    if seed is None:
        seed = os.getenv("MARKETPLACE_SEED", "true").lower() == "true"
    if seed:
        seed_demo_data(store)
        logger.info("MARKETPLACE_SEEDED")
    return create_app(store)


app = _app_from_env()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8003"))
    app.run(host="0.0.0.0", port=port, debug=False)
