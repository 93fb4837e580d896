"""
PLINKDROP - Ball Simulator

Drives one ball tick by tick: gravity, position integration, then a full
collision resolver pass. Runs until a sink captures the ball, or until the
ball can no longer reach a sink (tick budget spent, or fell below the board
floor), in which case it is force-captured by the nearest sink.

No terminal velocity is applied to gravity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from sim_engine.physics.collision import Ball, nearest_sink, resolve
from sim_engine.physics.errors import EngineFault
from sim_engine.physics.geometry import Board

logger = logging.getLogger("plinkdrop.engine")


@dataclass(frozen=True)
class StepResult:
    tick: int
    captured: bool
    slot: Optional[int] = None
    fallback: bool = False


class BallSimulator:
    """Owns one ball for the lifetime of one drop."""

    def __init__(self, board: Board, ball: Ball):
        self.board = board
        self.ball = ball
        self.tick = 0
        self.fallback = False

    @classmethod
    def at_entry(cls, board: Board, entry_x: float) -> "BallSimulator":
        cfg = board.config
        ball = Ball(x=entry_x, y=cfg.entry.y, radius=cfg.physics.ball_radius)
        return cls(board, ball)

    @property
    def finished(self) -> bool:
        return self.ball.captured

    @property
    def escaped(self) -> bool:
        """Ball fell completely below the board floor."""
        return self.ball.y - self.ball.radius > self.board.height

    def step(self) -> StepResult:
        """Advance one tick."""
        ball = self.ball
        if ball.captured:
            return StepResult(tick=self.tick, captured=True, slot=ball.slot, fallback=self.fallback)

        self.tick += 1
        ball.vy += self.board.config.physics.gravity
        ball.x += ball.vx
        ball.y += ball.vy

        event = resolve(ball, self.board)
        if event is not None and event.captured:
            logger.debug(f"Ball captured in slot {event.slot} at tick {self.tick} "
                         f"(x={ball.x:.2f}, y={ball.y:.2f})")
            return StepResult(tick=self.tick, captured=True, slot=event.slot)
        return StepResult(tick=self.tick, captured=False)

    def force_capture(self, reason: str) -> StepResult:
        """Capture into the horizontally nearest sink."""
        sink = nearest_sink(self.ball, self.board)
        if sink is None:
            logger.error(f"No sink available for fallback capture after {self.tick} ticks ({reason})")
            raise EngineFault(
                f"Ball not captured after {self.tick} ticks ({reason}) and the board has no sinks"
            )
        self.ball.capture(sink.slot)
        self.fallback = True
        logger.warning(f"Fallback capture into slot {sink.slot} after {self.tick} ticks ({reason}), "
                       f"ball x={self.ball.x:.2f}")
        return StepResult(tick=self.tick, captured=True, slot=sink.slot, fallback=True)

    def run(self) -> Iterator[StepResult]:
        """Yield one StepResult per tick; the last one is always a capture."""
        budget = self.board.config.physics.tick_budget
        while True:
            result = self.step()
            if result.captured:
                yield result
                return
            if self.escaped:
                yield self.force_capture("fell below the board")
                return
            if self.tick >= budget:
                yield self.force_capture("tick budget exhausted")
                return
            yield result
