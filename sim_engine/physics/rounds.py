"""
PLINKDROP - Round Outcome Engine

Orchestration root for one drop. Picks the entry point, runs the simulator to
completion in a tight loop (no rendering, no I/O) and returns the finished
trajectory plus the captured slot. Plain function, explicit inputs, no shared
state: rounds in different rooms may run concurrently against the same Board.

Usage:
    from sim_engine.physics import build_board, run_round
    board = build_board()
    outcome = run_round(board, seed="room-7:round-42")
    outcome.winning_slot, len(outcome.trajectory)
"""

from __future__ import annotations

import hashlib
import json
import random
from dataclasses import dataclass
from typing import Optional, Union

from config.board_schema import EntryJitter
from sim_engine.physics.errors import EngineFault
from sim_engine.physics.geometry import Board
from sim_engine.physics.simulator import BallSimulator

Seed = Union[int, str, bytes, None]

CAPTURE_SINK = "sink"
CAPTURE_FALLBACK = "fallback"


@dataclass(frozen=True)
class TrajectoryPoint:
    x: float
    y: float
    tick: int

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "tick": self.tick}


@dataclass(frozen=True)
class RoundOutcome:
    """Immutable result of one drop."""
    winning_slot: int
    trajectory: tuple[TrajectoryPoint, ...]
    entry_x: float
    ticks: int
    capture_mode: str = CAPTURE_SINK

    @property
    def final_position(self) -> tuple[float, float]:
        last = self.trajectory[-1]
        return last.x, last.y

    def digest(self) -> str:
        """SHA-256 over the canonical trajectory JSON, for audit and replay checks."""
        payload = json.dumps(
            {"slot": self.winning_slot,
             "trajectory": [[p.x, p.y, p.tick] for p in self.trajectory]},
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode()).hexdigest()

    def to_dict(self, include_trajectory: bool = True) -> dict:
        data = {
            "winning_slot": self.winning_slot,
            "entry_x": self.entry_x,
            "ticks": self.ticks,
            "capture_mode": self.capture_mode,
            "samples": len(self.trajectory),
            "digest": self.digest(),
        }
        if include_trajectory:
            data["trajectory"] = [p.to_dict() for p in self.trajectory]
        return data


def resolve_entry_x(board: Board, entry_x: Optional[float] = None, seed: Seed = None) -> float:
    """Horizontal start position for a drop.

    An explicit entry_x wins. Otherwise the board's EntryJitter flag decides;
    in random mode the offset comes from random.Random(seed), so the same seed
    always gives the same entry point.
    """
    if entry_x is not None:
        if not board.margin_left <= entry_x <= board.margin_right:
            raise ValueError(
                f"entry_x={entry_x} is outside the board margins "
                f"[{board.margin_left}, {board.margin_right}]"
            )
        return float(entry_x)

    entry = board.config.entry
    center = board.center_x
    if entry.mode == EntryJitter.NONE:
        x = center
    elif entry.mode == EntryJitter.FIXED:
        x = center + entry.fixed_offset
    else:
        u = random.Random(seed).random()
        x = center + (2 * u - 1) * entry.jitter_range
    return min(max(x, board.margin_left), board.margin_right)


def run_round(board: Board, entry_x: Optional[float] = None, *, seed: Seed = None) -> RoundOutcome:
    """Drop one ball and return the completed outcome.

    Raises:
        ValueError: explicit entry_x outside the board margins.
        EngineFault: the ball could not be captured, not even by fallback.
    """
    x0 = resolve_entry_x(board, entry_x, seed)
    sim = BallSimulator.at_entry(board, x0)
    stride = board.config.physics.sample_stride

    samples = [TrajectoryPoint(sim.ball.x, sim.ball.y, 0)]
    last = None
    for last in sim.run():
        if last.captured or last.tick % stride == 0:
            samples.append(TrajectoryPoint(sim.ball.x, sim.ball.y, last.tick))

    if last is None or not last.captured:
        raise EngineFault("Simulation ended without a capture")

    return RoundOutcome(
        winning_slot=last.slot,
        trajectory=tuple(samples),
        entry_x=x0,
        ticks=last.tick,
        capture_mode=CAPTURE_FALLBACK if last.fallback else CAPTURE_SINK,
    )
