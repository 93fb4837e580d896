"""
PLINKDROP - Round API

Flask blueprint: /api/plinko/*
The room/session layer calls these when a betting phase closes. The board is
built once at import and shared read-only by every request; each request
owns its own ball.

    GET  /api/plinko/board                  geometry + multiplier table
    POST /api/plinko/session                open a provably fair session
    POST /api/plinko/session/<id>/reveal    close it and reveal the server seed
    POST /api/plinko/round                  drop a ball, settle bets
    POST /api/plinko/verify                 replay a fair round
"""

import logging
import threading
from typing import Optional, Union

from flask import Blueprint, jsonify, request
from pydantic import BaseModel, Field, ValidationError

from config.board_schema import validate_board_config
from config.settings import EngineSettings
from sim_engine.physics import Bet, EngineFault, PlinkoError, build_board, run_round, settle_bets
from tools.drop_rng import DropSession, ProvablyFairDropper

logger = logging.getLogger("plinkdrop.api")

rounds_bp = Blueprint("rounds", __name__, url_prefix="/api/plinko")

BOARD = build_board(EngineSettings.board_config())
for _w in validate_board_config(BOARD.config):
    logger.info(f"Board config: {_w}")

_dropper = ProvablyFairDropper()
_sessions: dict[str, DropSession] = {}
_sessions_lock = threading.Lock()


# ═══════════════════════════════════════════════
# Request models
# ═══════════════════════════════════════════════

class BetIn(BaseModel):
    player_id: str
    slot_number: int
    amount: float = Field(ge=0)


class RoundIn(BaseModel):
    entry_x: Optional[float] = None
    seed: Optional[Union[int, str]] = None
    session_id: Optional[str] = None
    bets: list[BetIn] = Field(default_factory=list)
    include_trajectory: bool = True


class SessionIn(BaseModel):
    client_seed: Optional[str] = None


class VerifyIn(BaseModel):
    server_seed: str
    client_seed: str
    nonce: int = Field(ge=0)
    winning_slot: int
    trajectory_digest: Optional[str] = None
    server_seed_hash: Optional[str] = None


class SessionNotFound(LookupError):
    pass


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _get_session(session_id: str) -> DropSession:
    with _sessions_lock:
        session = _sessions.get(session_id)
    if session is None:
        raise SessionNotFound(session_id)
    return session


# ═══════════════════════════════════════════════
# Error mapping
# ═══════════════════════════════════════════════

@rounds_bp.errorhandler(EngineFault)
def _engine_fault(e):
    logger.error(f"Round aborted: {e}")
    return jsonify({"error": str(e), "type": "EngineFault"}), 500


@rounds_bp.errorhandler(ValidationError)
def _bad_request_body(e):
    return jsonify({"error": "Invalid request body", "details": str(e)}), 400


@rounds_bp.errorhandler(PlinkoError)
@rounds_bp.errorhandler(ValueError)
def _bad_request(e):
    return jsonify({"error": str(e), "type": type(e).__name__}), 400


@rounds_bp.errorhandler(SessionNotFound)
def _unknown_session(e):
    return jsonify({"error": f"Unknown session: {e.args[0] if e.args else ''}"}), 404


# ═══════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════

@rounds_bp.route("/board")
def api_board():
    data = BOARD.summary()
    data["multipliers"] = {str(k): v for k, v in BOARD.multiplier_table().items()}
    data["warnings"] = validate_board_config(BOARD.config)
    return jsonify(data)


@rounds_bp.route("/session", methods=["POST"])
def api_session_create():
    """Open a fair session. Returns the server seed hash; the seed stays secret."""
    body = SessionIn(**_body())
    session = _dropper.new_session(client_seed=body.client_seed,
                                   server_seed=EngineSettings.SERVER_SEED or None)
    with _sessions_lock:
        _sessions[session.session_id] = session
    return jsonify(session.public_view()), 201


@rounds_bp.route("/session/<session_id>/reveal", methods=["POST"])
def api_session_reveal(session_id):
    """Reveal the server seed and forget the session; later calls with this id are 404."""
    with _sessions_lock:
        session = _sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        _dropper.reveal(session)
    logger.info(f"Session {session_id} revealed after {len(session.rounds)} round(s)")
    return jsonify(session.public_view())


@rounds_bp.route("/round", methods=["POST"])
def api_round():
    """Drop one ball and settle the supplied bets against it.

    POST body (JSON):
        entry_x            optional explicit start x
        seed               optional seed for the entry jitter
        session_id         optional fair session; the entry point comes from its
                           seeds, so entry_x and seed must be left out
        bets               [{player_id, slot_number, amount}]
        include_trajectory default true
    """
    body = RoundIn(**_body())
    bets = [Bet(player_id=b.player_id, slot_number=b.slot_number, amount=b.amount)
            for b in body.bets]

    fair = None
    if body.session_id:
        if body.entry_x is not None or body.seed is not None:
            raise ValueError("entry_x and seed cannot be combined with session_id")
        session = _get_session(body.session_id)
        with _sessions_lock:
            if session.revealed:
                raise ValueError(f"Session {session.session_id} is revealed; start a new session")
            nonce = session.nonce
            session.nonce += 1
        drop = _dropper.drop(session, BOARD, nonce=nonce)
        outcome = drop.outcome
        fair = drop.verification_data()
    else:
        outcome = run_round(BOARD, body.entry_x, seed=body.seed)

    settlements = settle_bets(outcome, bets, BOARD.multiplier_table())
    logger.info(f"Round: slot {outcome.winning_slot} after {outcome.ticks} ticks "
                f"({outcome.capture_mode}), {len(bets)} bet(s) settled")
    return jsonify({
        "outcome": outcome.to_dict(include_trajectory=body.include_trajectory),
        "settlements": [s.to_dict() for s in settlements],
        "fair": fair,
    })


@rounds_bp.route("/verify", methods=["POST"])
def api_verify():
    body = VerifyIn(**_body())
    ok = _dropper.verify(
        body.server_seed, body.client_seed, body.nonce, BOARD,
        winning_slot=body.winning_slot,
        trajectory_digest=body.trajectory_digest,
        server_seed_hash=body.server_seed_hash,
    )
    return jsonify({"verified": ok})
