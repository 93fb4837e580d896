"""
PLINKDROP - Board Configuration Schema

Every constant the drop engine uses lives here: board size, peg lattice,
sink row, physics tuning and the entry-point policy. The engine never reads
the environment; callers build a BoardConfig (or take the default) and hand
it to build_board().

Usage:
    from config.board_schema import BoardConfig, default_board_config
    config = default_board_config()
    narrow = config.model_copy(update={"width": 600})
    json_str = config.model_dump_json(indent=2)
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ═══════════════════════════════════════════════════════════════
# Published multiplier table (slot index -> multiplier)
# ═══════════════════════════════════════════════════════════════

DEFAULT_MULTIPLIERS: dict[int, float] = {
    1: 8,      # edge
    2: 3,
    3: 2,
    4: 1.5,
    5: 1.2,
    6: 1.1,
    7: 1,
    8: 5,      # elevated center
    9: 1,
    10: 1.1,
    11: 1.2,
    12: 1.5,
    13: 2,
    14: 3,
    15: 8,     # edge
}


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class EntryJitter(str, Enum):
    """How the horizontal entry point is chosen when the caller gives none."""
    NONE = "none"        # exact horizontal center
    FIXED = "fixed"      # center + fixed_offset
    RANDOM = "random"    # center + uniform(-jitter_range, +jitter_range)


# ═══════════════════════════════════════════════════════════════
# Sub-Models
# ═══════════════════════════════════════════════════════════════

class PhysicsConfig(BaseModel):
    """Integration and bounce constants, in board units per tick."""
    model_config = ConfigDict(frozen=True)

    gravity: float = Field(0.6, gt=0)
    horizontal_friction: float = Field(0.4, ge=0, le=1)   # damping on vx after a peg bounce
    vertical_friction: float = Field(0.8, ge=0, le=1)     # damping on vy after a peg bounce
    ball_radius: float = Field(7.0, gt=0)
    tick_budget: int = Field(2000, ge=1)
    sample_stride: int = Field(1, ge=1)                   # record every Nth tick


class PegLayout(BaseModel):
    """Triangular peg lattice. Row r in [first_row, rows) holds r + base_count pegs."""
    model_config = ConfigDict(frozen=True)

    rows: int = Field(18, ge=0)
    first_row: int = Field(2, ge=0)
    base_count: int = Field(1, ge=0)
    row_spacing: float = Field(35.0, gt=0)
    peg_spacing: float = Field(36.0, gt=0)
    top_offset: float = 0.0
    radius: float = Field(4.0, gt=0)


class SinkLayout(BaseModel):
    """Row of scoring bins along the bottom of the board."""
    model_config = ConfigDict(frozen=True)

    count: int = Field(15, ge=1)
    width: float = Field(48.0, gt=0)
    height: Optional[float] = Field(None, gt=0)       # None -> same as width
    spacing: Optional[float] = Field(None, gt=0)      # None -> peg spacing
    bottom_offset: float = 170.0                      # sink y = board height - bottom_offset
    multipliers: dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_MULTIPLIERS))

    @field_validator("multipliers")
    @classmethod
    def _non_negative(cls, v: dict[int, float]) -> dict[int, float]:
        for slot, mult in v.items():
            if not math.isfinite(mult) or mult < 0:
                raise ValueError(f"multiplier for slot {slot} must be a finite number >= 0, got {mult}")
        return v

    @model_validator(mode="after")
    def _table_matches_count(self) -> "SinkLayout":
        expected = set(range(1, self.count + 1))
        if set(self.multipliers) != expected:
            raise ValueError(
                f"multiplier table must cover slots 1..{self.count}, "
                f"got {sorted(self.multipliers)}"
            )
        return self


class EntryConfig(BaseModel):
    """Where the ball starts."""
    model_config = ConfigDict(frozen=True)

    mode: EntryJitter = EntryJitter.RANDOM
    y: float = 50.0
    fixed_offset: float = 13.0
    jitter_range: float = Field(30.0, ge=0)


# ═══════════════════════════════════════════════════════════════
# Root Model
# ═══════════════════════════════════════════════════════════════

class BoardConfig(BaseModel):
    """Complete board configuration consumed by build_board()."""
    model_config = ConfigDict(frozen=True)

    width: float = Field(800.0, gt=0)
    height: float = Field(800.0, gt=0)
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    pegs: PegLayout = Field(default_factory=PegLayout)
    sinks: SinkLayout = Field(default_factory=SinkLayout)
    entry: EntryConfig = Field(default_factory=EntryConfig)

    @property
    def margin_left(self) -> float:
        return self.physics.ball_radius

    @property
    def margin_right(self) -> float:
        return self.width - self.physics.ball_radius

    @model_validator(mode="after")
    def _ball_fits(self) -> "BoardConfig":
        if self.margin_left > self.margin_right:
            raise ValueError(
                f"board width {self.width} is too narrow for ball radius {self.physics.ball_radius}"
            )
        return self


def default_board_config() -> BoardConfig:
    """The published 15-slot board."""
    return BoardConfig()


# ═══════════════════════════════════════════════════════════════
# Soft validation
# ═══════════════════════════════════════════════════════════════

def validate_board_config(config: BoardConfig) -> list[str]:
    """Return human-readable warnings for a config that builds but looks off.

    Hard errors are raised by the pydantic validators; everything here is a
    game-design smell rather than something the engine cannot run.
    """
    warnings = []
    sinks = config.sinks

    mults = [sinks.multipliers[i] for i in range(1, sinks.count + 1)]
    if mults != mults[::-1]:
        warnings.append("Multiplier table is not symmetric around the board center")

    spacing = sinks.spacing or config.pegs.peg_spacing
    span = (sinks.count - 1) * spacing + sinks.width
    if span > config.width:
        warnings.append(
            f"Sink row spans {span:.0f} units but the board is only {config.width:.0f} wide"
        )
    if sinks.width > spacing:
        warnings.append(
            f"Sink width {sinks.width:.0f} exceeds sink spacing {spacing:.0f}: "
            f"adjacent spans overlap and the lower slot wins"
        )
    elif sinks.width < spacing:
        warnings.append(
            f"Sink width {sinks.width:.0f} is narrower than spacing {spacing:.0f}: "
            f"balls between sinks only land via fallback capture"
        )

    pegs = config.pegs
    if pegs.rows > pegs.first_row:
        last_row_y = pegs.top_offset + (pegs.rows - 1) * pegs.row_spacing
        sink_h = sinks.height or sinks.width
        trigger_y = config.height - sinks.bottom_offset - sink_h / 2
        if last_row_y + pegs.radius > trigger_y:
            warnings.append(
                f"Last peg row (y={last_row_y:.0f}) reaches below the sink trigger line (y={trigger_y:.0f})"
            )

    if config.entry.mode == EntryJitter.RANDOM and config.entry.jitter_range == 0:
        warnings.append("Entry mode is 'random' but jitter_range is 0")

    return warnings
