"""
PLINKDROP - Geometry Model

Static board data: the peg lattice and the sink row. Built once per
BoardConfig and never mutated afterwards, so one Board can be read by any
number of concurrent rounds without locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from config.board_schema import BoardConfig, default_board_config

logger = logging.getLogger("plinkdrop.engine")


@dataclass(frozen=True)
class Peg:
    x: float
    y: float
    radius: float


@dataclass(frozen=True)
class Sink:
    """A capture bin. Positions are center-based; `slot` is 1-based."""
    slot: int
    center_x: float
    y: float
    width: float
    height: float
    multiplier: float

    @property
    def left(self) -> float:
        return self.center_x - self.width / 2

    @property
    def right(self) -> float:
        return self.center_x + self.width / 2

    @property
    def trigger_y(self) -> float:
        """A ball whose lower edge reaches this line is captured."""
        return self.y - self.height / 2


@dataclass(frozen=True)
class Board:
    pegs: tuple[Peg, ...]
    sinks: tuple[Sink, ...]
    config: BoardConfig

    @property
    def width(self) -> float:
        return self.config.width

    @property
    def height(self) -> float:
        return self.config.height

    @property
    def center_x(self) -> float:
        return self.config.width / 2

    @property
    def margin_left(self) -> float:
        return self.config.margin_left

    @property
    def margin_right(self) -> float:
        return self.config.margin_right

    @property
    def slot_count(self) -> int:
        return len(self.sinks)

    def multiplier_table(self) -> dict[int, float]:
        return {s.slot: s.multiplier for s in self.sinks}

    def summary(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "pegs": len(self.pegs),
            "sinks": [
                {
                    "slot": s.slot,
                    "center_x": round(s.center_x, 3),
                    "left": round(s.left, 3),
                    "right": round(s.right, 3),
                    "trigger_y": round(s.trigger_y, 3),
                    "multiplier": s.multiplier,
                }
                for s in self.sinks
            ],
            "margins": [self.margin_left, self.margin_right],
            "ball_radius": self.config.physics.ball_radius,
        }


def build_pegs(config: BoardConfig) -> tuple[Peg, ...]:
    """Triangular lattice centered on the board; peg columns align across rows."""
    layout = config.pegs
    center = config.width / 2
    pegs = []
    for row in range(layout.first_row, layout.rows):
        count = row + layout.base_count
        y = layout.top_offset + row * layout.row_spacing
        # Row of `count` pegs spans (count - 1) * spacing, centered on the board
        half_span = (count - 1) / 2
        for col in range(count):
            x = center - layout.peg_spacing * (half_span - col)
            pegs.append(Peg(x=x, y=y, radius=layout.radius))
    return tuple(pegs)


def build_sinks(config: BoardConfig) -> tuple[Sink, ...]:
    """Sink centers on the peg column pitch; leftover width is split evenly as margin."""
    layout = config.sinks
    spacing = layout.spacing or config.pegs.peg_spacing
    height = layout.height or layout.width
    start_x = (config.width - (layout.count - 1) * spacing) / 2
    y = config.height - layout.bottom_offset
    return tuple(
        Sink(
            slot=i + 1,
            center_x=start_x + i * spacing,
            y=y,
            width=layout.width,
            height=height,
            multiplier=float(layout.multipliers[i + 1]),
        )
        for i in range(layout.count)
    )


def build_board(config: Optional[BoardConfig] = None) -> Board:
    """Build the immutable board for a configuration. Pure and deterministic."""
    config = config or default_board_config()
    board = Board(pegs=build_pegs(config), sinks=build_sinks(config), config=config)
    logger.debug(f"Built board: {len(board.pegs)} pegs, {len(board.sinks)} sinks, "
                 f"{config.width:.0f}x{config.height:.0f}")
    return board
