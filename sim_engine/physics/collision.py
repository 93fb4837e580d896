"""
PLINKDROP - Collision Resolver

One resolver pass per tick, in this order:
  1. Peg bounces: every overlapping peg, in lattice order, mutating the ball
     cumulatively.
  2. Horizontal margins: clamp x and reflect vx. A physics rule, not a fault.
  3. Sink capture: first sink (by slot) whose span holds the ball center and
     whose trigger line the ball's lower edge has reached.

Bounce model: the ball leaves along the contact normal with its pre-contact
speed, damped separately per axis (horizontal loses more than vertical), and
is pushed out of the peg by the overlap distance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from sim_engine.physics.geometry import Board, Peg, Sink


@dataclass
class Ball:
    """Kinematic state of one ball. Owned by exactly one simulation run."""
    x: float
    y: float
    radius: float
    vx: float = 0.0
    vy: float = 0.0
    captured: bool = False
    slot: Optional[int] = None

    @property
    def speed(self) -> float:
        return math.hypot(self.vx, self.vy)

    def capture(self, slot: int) -> None:
        self.vx = 0.0
        self.vy = 0.0
        self.captured = True
        self.slot = slot


@dataclass
class CollisionEvent:
    """What happened during one resolver pass."""
    peg_hits: list[int] = field(default_factory=list)   # indices into board.pegs
    clamped: bool = False
    slot: Optional[int] = None

    @property
    def captured(self) -> bool:
        return self.slot is not None


def bounce_off_peg(ball: Ball, peg: Peg, distance: float,
                   horizontal_friction: float, vertical_friction: float) -> None:
    angle = math.atan2(ball.y - peg.y, ball.x - peg.x)
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    speed = ball.speed
    ball.vx = cos_a * speed * horizontal_friction
    ball.vy = sin_a * speed * vertical_friction

    overlap = ball.radius + peg.radius - distance
    ball.x += cos_a * overlap
    ball.y += sin_a * overlap


def resolve_pegs(ball: Ball, board: Board) -> list[int]:
    """Bounce off every overlapping peg; return the indices that were hit."""
    physics = board.config.physics
    hits = []
    for i, peg in enumerate(board.pegs):
        distance = math.hypot(ball.x - peg.x, ball.y - peg.y)
        if distance < ball.radius + peg.radius:
            bounce_off_peg(ball, peg, distance,
                           physics.horizontal_friction, physics.vertical_friction)
            hits.append(i)
    return hits


def clamp_to_margins(ball: Ball, board: Board) -> bool:
    """Keep the ball inside [margin_left, margin_right]. Returns True if clamped."""
    if ball.x < board.margin_left:
        ball.x = board.margin_left
        ball.vx = abs(ball.vx)
        return True
    if ball.x > board.margin_right:
        ball.x = board.margin_right
        ball.vx = -abs(ball.vx)
        return True
    return False


def sink_contains(sink: Sink, ball: Ball) -> bool:
    return (sink.left <= ball.x < sink.right
            and ball.y + ball.radius >= sink.trigger_y)


def resolve_sinks(ball: Ball, board: Board) -> Optional[int]:
    """Capture the ball in the first matching sink; return its slot or None."""
    for sink in board.sinks:
        if sink_contains(sink, ball):
            ball.capture(sink.slot)
            return sink.slot
    return None


def nearest_sink(ball: Ball, board: Board) -> Optional[Sink]:
    """Sink whose center is horizontally closest to the ball (lowest slot on ties)."""
    best = None
    best_dx = math.inf
    for sink in board.sinks:
        dx = abs(ball.x - sink.center_x)
        if dx < best_dx:
            best, best_dx = sink, dx
    return best


def resolve(ball: Ball, board: Board) -> Optional[CollisionEvent]:
    """Run one full resolver pass against the static geometry.

    Returns None when the ball touched nothing this tick.
    """
    if ball.captured:
        return CollisionEvent(slot=ball.slot)
    event = CollisionEvent(
        peg_hits=resolve_pegs(ball, board),
        clamped=clamp_to_margins(ball, board),
        slot=resolve_sinks(ball, board),
    )
    if not event.peg_hits and not event.clamped and not event.captured:
        return None
    return event
