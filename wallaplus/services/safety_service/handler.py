"""Safety Service HTTP handler.

Exposes the live and final scans to UIs that cannot import the scanner
directly. Scans are advisory: a risky result never blocks anything.
Message text is never logged, only its hash and length.
"""
import logging
import os

from flask import Flask, jsonify, request

from wallaplus.shared.utils import hash_text_for_audit
from .config import LIVE_WARNING_TEXT, SAFETY_RULE_TEXT, SYSTEM_WARNING_TEXT, SafetyConfig
from .scanner import SafetyScanner

logger = logging.getLogger(__name__)

app = Flask(__name__)

config = SafetyConfig.from_env()
scanner = SafetyScanner(config=config)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "safety-service",
        "scanner_version": config.pattern_version,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies scanner is initialized."""
    if scanner is None:
        return jsonify({"status": "not_ready", "reason": "scanner_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/rules", methods=["GET"])
def rules():
    """Static safety copy shown in every chat."""
    return jsonify({
        "safety_rule": SAFETY_RULE_TEXT,
        "live_warning": LIVE_WARNING_TEXT,
        "system_warning": SYSTEM_WARNING_TEXT,
        "region": config.region,
        "scanner_version": config.pattern_version,
    }), 200


@app.route("/scan/live", methods=["POST"])
def scan_live():
    """Per-keystroke scan.

    Request Body:
        {"text": "current compose box contents"}

    Response:
        {
            "risky": true | false,
            "signals": ["digit_run", "at_sign"],
            "warning": "banner copy" | null
        }
    """
    text, error = _read_text()
    if error is not None:
        return error

    signals = scanner.live_signals(text)
    return jsonify({
        "risky": bool(signals),
        "signals": sorted(s.value for s in signals),
        "warning": LIVE_WARNING_TEXT if signals else None,
        "scanner_version": config.pattern_version,
    }), 200


@app.route("/scan/final", methods=["POST"])
def scan_final():
    """At-send scan, same response shape as /scan/live."""
    text, error = _read_text()
    if error is not None:
        return error

    signals = scanner.final_signals(text)
    if signals:
        logger.info(
            "FINAL_SCAN_RISKY",
            extra={
                "text_hash": hash_text_for_audit(text),
                "text_length": len(text),
                "signals": sorted(s.value for s in signals),
            }
        )

    return jsonify({
        "risky": bool(signals),
        "signals": sorted(s.value for s in signals),
        "warning": SYSTEM_WARNING_TEXT if signals else None,
        "scanner_version": config.pattern_version,
    }), 200


def _read_text():
    """Pull "text" out of the JSON body.

    Returns:
        (text, None) on success, (None, error_response) otherwise
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        logger.warning("SCAN_REQUEST_INVALID", extra={"reason": "empty_body"})
        return None, (jsonify({"error": "Request body required"}), 400)

    text = data.get("text")
    if not isinstance(text, str):
        logger.warning("SCAN_REQUEST_INVALID", extra={"reason": "missing_text"})
        return None, (jsonify({"error": "Missing required field: text"}), 400)

    if len(text) > config.max_text_length:
        logger.warning(
            "SCAN_REQUEST_INVALID",
            extra={"reason": "text_too_long", "text_length": len(text)}
        )
        return None, (
            jsonify({"error": f"text exceeds {config.max_text_length} characters"}),
            400,
        )

    return text, None


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8001"))
    app.run(host="0.0.0.0", port=port, debug=False)
