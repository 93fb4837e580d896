"""
PLINKDROP - Provably Fair Drops

Server-seed + client-seed + nonce system that makes every drop replayable by
the player. The physics engine is deterministic, so the only random input of
a round is its entry point; that entry point is derived from a hash the
player can recompute once the server seed is revealed.

Architecture:
    Server generates server_seed_hash = SHA-256(server_seed).
    Client provides client_seed (or it's auto-generated).
    For each round:
        combined = HMAC-SHA256(server_seed, client_seed + ":" + nonce)
        u        = int(combined[:8], 16) / 2^32
        entry_x  = center + (2u - 1) * jitter_range
        outcome  = run_round(board, entry_x)
    After the session, server_seed is revealed for verification.

Usage:
    from tools.drop_rng import ProvablyFairDropper
    dropper = ProvablyFairDropper()
    session = dropper.new_session()
    print(session.server_seed_hash)             # share with player up front
    rnd = dropper.drop(session, board)          # nonce auto-increments
    dropper.verify(session.server_seed, session.client_seed, rnd.nonce,
                   board, rnd.winning_slot, rnd.trajectory_digest)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional

from sim_engine.physics import Board, RoundOutcome, run_round

logger = logging.getLogger("plinkdrop.rng")


# ═══════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════

@dataclass
class DropSession:
    """A provably fair session: one server seed, many rounds."""
    session_id: str
    server_seed: str          # Secret until the session is revealed
    server_seed_hash: str     # SHA-256 of server_seed (shared upfront)
    client_seed: str
    nonce: int = 0            # Next unused nonce
    created_at: float = 0
    revealed: bool = False
    rounds: list = field(default_factory=list)   # verification_data() per round, no trajectories

    def __post_init__(self):
        if not self.created_at:
            self.created_at = time.time()

    def public_view(self) -> dict:
        data = {
            "session_id": self.session_id,
            "server_seed_hash": self.server_seed_hash,
            "client_seed": self.client_seed,
            "nonce": self.nonce,
            "rounds": len(self.rounds),
            "revealed": self.revealed,
        }
        if self.revealed:
            data["server_seed"] = self.server_seed
        return data


@dataclass
class DropRound:
    """One fair drop with its full audit trail."""
    session_id: str
    nonce: int
    combined_hash: str
    raw_value: float
    entry_x: float
    winning_slot: int
    trajectory_digest: str
    outcome: RoundOutcome
    timestamp: float = 0

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.time()

    def verification_data(self) -> dict:
        """Data needed to independently verify this round."""
        return {
            "session_id": self.session_id,
            "nonce": self.nonce,
            "combined_hash": self.combined_hash,
            "raw_value": self.raw_value,
            "entry_x": self.entry_x,
            "winning_slot": self.winning_slot,
            "trajectory_digest": self.trajectory_digest,
            "verification_steps": [
                "1. Compute: combined = HMAC-SHA256(server_seed, client_seed + ':' + str(nonce))",
                "2. raw_value = int(combined[:8], 16) / 0x100000000",
                "3. entry_x = board_width / 2 + (2 * raw_value - 1) * jitter_range",
                "4. Replay the drop from entry_x and compare slot and trajectory digest",
            ],
        }

    def to_audit_json(self) -> str:
        return json.dumps(self.verification_data(), indent=2)


# ═══════════════════════════════════════════════════════════════
# Core RNG
# ═══════════════════════════════════════════════════════════════

class ProvablyFairDropper:
    """Derives entry points with HMAC-SHA256 and runs the drop."""

    def new_session(self, client_seed: Optional[str] = None,
                    server_seed: Optional[str] = None) -> DropSession:
        """Create a session. server_seed is only passed explicitly for replays and tests."""
        server_seed = server_seed or os.urandom(32).hex()
        server_seed_hash = hashlib.sha256(server_seed.encode()).hexdigest()
        session_id = hashlib.sha256(
            f"{server_seed}:{time.time()}".encode()
        ).hexdigest()[:16]

        if client_seed is None:
            client_seed = os.urandom(16).hex()

        logger.info(f"New fair session {session_id} (server seed hash {server_seed_hash[:12]}...)")
        return DropSession(
            session_id=session_id,
            server_seed=server_seed,
            server_seed_hash=server_seed_hash,
            client_seed=client_seed,
        )

    @staticmethod
    def derive_hash(server_seed: str, client_seed: str, nonce: int) -> str:
        """HMAC-SHA256(server_seed, client_seed:nonce) as hex."""
        message = f"{client_seed}:{nonce}"
        return hmac.new(
            server_seed.encode(),
            message.encode(),
            hashlib.sha256,
        ).hexdigest()

    @staticmethod
    def hash_to_float(hex_hash: str) -> float:
        """First 8 hex characters as a float in [0, 1)."""
        return int(hex_hash[:8], 16) / 0x100000000  # 2^32

    @staticmethod
    def entry_x_for(board: Board, raw_value: float) -> float:
        """Map u in [0, 1) onto the board's jitter window around the center."""
        jitter = board.config.entry.jitter_range
        x = board.center_x + (2 * raw_value - 1) * jitter
        return min(max(x, board.margin_left), board.margin_right)

    def drop(self, session: DropSession, board: Board,
             nonce: Optional[int] = None) -> DropRound:
        """Run one provably fair drop."""
        if session.revealed:
            raise ValueError(f"Session {session.session_id} is revealed; start a new session")
        if nonce is None:
            nonce = session.nonce
            session.nonce += 1

        combined = self.derive_hash(session.server_seed, session.client_seed, nonce)
        r = self.hash_to_float(combined)
        entry_x = self.entry_x_for(board, r)
        outcome = run_round(board, entry_x)

        round_data = DropRound(
            session_id=session.session_id,
            nonce=nonce,
            combined_hash=combined,
            raw_value=r,
            entry_x=entry_x,
            winning_slot=outcome.winning_slot,
            trajectory_digest=outcome.digest(),
            outcome=outcome,
        )
        session.rounds.append(round_data.verification_data())
        logger.debug(f"Session {session.session_id} nonce {nonce}: entry_x={entry_x:.3f} "
                     f"-> slot {outcome.winning_slot}")
        return round_data

    def reveal(self, session: DropSession) -> str:
        """End the session and hand out the server seed."""
        session.revealed = True
        return session.server_seed

    def verify(self, server_seed: str, client_seed: str, nonce: int, board: Board,
               winning_slot: int, trajectory_digest: Optional[str] = None,
               server_seed_hash: Optional[str] = None) -> bool:
        """Replay a round from its seeds and compare against the claimed result."""
        if server_seed_hash is not None:
            if hashlib.sha256(server_seed.encode()).hexdigest() != server_seed_hash:
                return False
        combined = self.derive_hash(server_seed, client_seed, nonce)
        entry_x = self.entry_x_for(board, self.hash_to_float(combined))
        outcome = run_round(board, entry_x)
        if outcome.winning_slot != winning_slot:
            return False
        if trajectory_digest is not None and outcome.digest() != trajectory_digest:
            return False
        return True
