"""
PLINKDROP - Round Service

Thin HTTP host for the drop engine. Room lifecycle, wallets, chat and
persistence live elsewhere; they call /api/plinko/round when a betting
phase closes and consume the outcome it returns.
"""
import logging
import os

from dotenv import load_dotenv
load_dotenv()

from config.settings import EngineSettings

# ── Structured logging ──
logging.basicConfig(
    level=EngineSettings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("plinkdrop")

from flask import Flask, jsonify

from api.round_routes import BOARD, rounds_bp


def create_app() -> Flask:
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 1 * 1024 * 1024  # bet batches only
    app.register_blueprint(rounds_bp)
    logger.info(f"Registered round API at {rounds_bp.url_prefix}/ "
                f"({len(BOARD.pegs)} pegs, {BOARD.slot_count} slots)")

    @app.route("/healthz")
    def healthz():
        return jsonify({"ok": True, "slots": BOARD.slot_count})

    return app


app = create_app()


if __name__ == "__main__":
    port = EngineSettings.PORT
    logger.info(f"Starting PLINKDROP round service on port {port}")
    app.run(debug=os.getenv("FLASK_DEBUG", "false").lower() == "true", host="0.0.0.0", port=port)
