"""
PLINKDROP - Ball-Drop Physics Engine

Deterministic peg-board simulation: geometry -> collision resolver ->
ball simulator -> round outcome -> payout.

Usage:
    from sim_engine.physics import build_board, run_round, payout
    board = build_board()
    outcome = run_round(board, seed=42)
    won = payout(outcome.winning_slot, board.multiplier_table(), wager=10)
"""

from sim_engine.physics.errors import EngineFault, InvalidSlot, InvalidWager, PlinkoError
from sim_engine.physics.geometry import Board, Peg, Sink, build_board
from sim_engine.physics.collision import Ball, CollisionEvent, resolve
from sim_engine.physics.simulator import BallSimulator, StepResult
from sim_engine.physics.rounds import (
    CAPTURE_FALLBACK, CAPTURE_SINK, RoundOutcome, TrajectoryPoint,
    resolve_entry_x, run_round,
)
from sim_engine.physics.payout import Bet, BetSettlement, multiplier_for, payout, settle_bets

__all__ = [
    "PlinkoError", "InvalidSlot", "InvalidWager", "EngineFault",
    "Board", "Peg", "Sink", "build_board",
    "Ball", "CollisionEvent", "resolve",
    "BallSimulator", "StepResult",
    "RoundOutcome", "TrajectoryPoint", "CAPTURE_SINK", "CAPTURE_FALLBACK",
    "resolve_entry_x", "run_round",
    "Bet", "BetSettlement", "multiplier_for", "payout", "settle_bets",
]
