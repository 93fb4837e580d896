"""
PLINKDROP - Slot Distribution Audit

Drops N balls through the real physics and measures where they land.
The outcome of a drop is whatever the simulation produces, so the only way
to know a board's odds is to run it. This validator reports:
  • Hit frequency per slot
  • Return-to-player per slot (frequency x multiplier) for a player who
    always bets that slot
  • Fallback-capture rate (balls that missed every sink) and where they went
  • Warnings for slots that pay back more than they take

A ball that drops below the floor outside every sink span is captured by the
nearest sink straight away instead of running out the tick budget; the slot
is the same either way, only the trajectory is shorter. On the default board
about 3% of drops end this way, nearly all of them in the 8x edge slots;
AuditResult.fallback_slots records where each one landed.

Entry points come from a seeded splitmix64 generator, so an audit with the
same seed and board is fully reproducible.

Usage:
    from tools.drop_montecarlo import DropAudit
    result = DropAudit(seed=42).run(board, n_rounds=5000)
    print(result.summary())
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field

from sim_engine.physics import CAPTURE_FALLBACK, Board, run_round

logger = logging.getLogger("plinkdrop.audit")


# ═══════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════

@dataclass
class AuditResult:
    """Results from one distribution audit."""
    n_rounds: int
    slot_counts: dict = field(default_factory=dict)      # {slot: hits}
    slot_frequency: dict = field(default_factory=dict)   # {slot: fraction}
    slot_rtp: dict = field(default_factory=dict)         # {slot: frequency * multiplier}
    fallback_count: int = 0
    fallback_slots: dict = field(default_factory=dict)   # {slot: fallback hits}
    mean_ticks: float = 0.0
    warnings: list = field(default_factory=list)

    # Timing
    duration_seconds: float = 0.0
    rounds_per_second: float = 0.0

    seed: str = ""

    @property
    def fallback_rate(self) -> float:
        return self.fallback_count / self.n_rounds if self.n_rounds else 0.0

    @property
    def best_slot(self) -> int:
        return max(self.slot_rtp, key=lambda s: (self.slot_rtp[s], -s))

    @property
    def worst_slot(self) -> int:
        return min(self.slot_rtp, key=lambda s: (self.slot_rtp[s], s))

    @property
    def mean_rtp(self) -> float:
        """RTP of a player who picks a slot uniformly at random."""
        return sum(self.slot_rtp.values()) / len(self.slot_rtp) if self.slot_rtp else 0.0

    @property
    def passed(self) -> bool:
        return not self.warnings

    def summary(self) -> str:
        status = "✅ PASS" if self.passed else "❌ FAIL"
        lines = [
            "═══ Drop Audit ═══",
            f"  Rounds:      {self.n_rounds:,}",
            f"  Fallbacks:   {self.fallback_count:,} ({self.fallback_rate*100:.2f}%)",
            f"  Mean ticks:  {self.mean_ticks:.1f}",
            f"  Mean RTP:    {self.mean_rtp*100:.2f}%",
            f"  Best slot:   #{self.best_slot} ({self.slot_rtp[self.best_slot]*100:.2f}%)",
            f"  Worst slot:  #{self.worst_slot} ({self.slot_rtp[self.worst_slot]*100:.2f}%)",
            f"  Status:      {status}",
            f"  Speed:       {self.rounds_per_second:,.0f} rounds/sec",
        ]
        for w in self.warnings:
            lines.append(f"  ⚠️  {w}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "n_rounds": self.n_rounds,
            "slots": {
                str(s): {
                    "hits": self.slot_counts[s],
                    "frequency": round(self.slot_frequency[s], 6),
                    "rtp": round(self.slot_rtp[s], 6),
                }
                for s in sorted(self.slot_counts)
            },
            "mean_rtp": round(self.mean_rtp, 6),
            "best_slot": self.best_slot,
            "worst_slot": self.worst_slot,
            "fallback_count": self.fallback_count,
            "fallback_rate": round(self.fallback_rate, 6),
            "fallback_slots": {str(s): c for s, c in sorted(self.fallback_slots.items())},
            "mean_ticks": round(self.mean_ticks, 2),
            "pass": self.passed,
            "warnings": self.warnings,
            "performance": {
                "duration_s": round(self.duration_seconds, 2),
                "rounds_per_sec": int(self.rounds_per_second),
            },
            "seed": self.seed,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


# ═══════════════════════════════════════════════════════════════
# Fast RNG (pure Python, no external deps)
# ═══════════════════════════════════════════════════════════════
# Audits need many entry points quickly and reproducibly, not provability.

class FastRNG:
    """Splitmix64 PRNG: fast, deterministic, good distribution."""

    def __init__(self, seed: int = 0):
        self.state = seed & 0xFFFFFFFFFFFFFFFF

    def _next(self) -> int:
        self.state = (self.state + 0x9E3779B97F4A7C15) & 0xFFFFFFFFFFFFFFFF
        z = self.state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & 0xFFFFFFFFFFFFFFFF
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & 0xFFFFFFFFFFFFFFFF
        return (z ^ (z >> 31)) & 0xFFFFFFFFFFFFFFFF

    def random(self) -> float:
        """Float in [0, 1)."""
        return self._next() / (1 << 64)


# ═══════════════════════════════════════════════════════════════
# Audit runner
# ═══════════════════════════════════════════════════════════════

class DropAudit:
    """Measures a board's slot distribution by simulation."""

    def __init__(self, seed: int = 42, rtp_ceiling: float = 1.0):
        """
        Args:
            seed: Base seed for reproducibility
            rtp_ceiling: Per-slot RTP above this is flagged (1.0 = player edge)
        """
        self.base_seed = seed
        self.rtp_ceiling = rtp_ceiling

    def _rng(self) -> FastRNG:
        h = int(hashlib.md5(f"{self.base_seed}:drop".encode()).hexdigest()[:8], 16)
        return FastRNG(h)

    def run(self, board: Board, n_rounds: int = 2000) -> AuditResult:
        if n_rounds < 1:
            raise ValueError(f"n_rounds must be >= 1, got {n_rounds}")

        rng = self._rng()
        jitter = board.config.entry.jitter_range
        counts = {s.slot: 0 for s in board.sinks}
        fallbacks = 0
        fallback_slots: dict[int, int] = {}
        total_ticks = 0

        t0 = time.time()
        for _ in range(n_rounds):
            x = board.center_x + (2 * rng.random() - 1) * jitter
            x = min(max(x, board.margin_left), board.margin_right)
            outcome = run_round(board, x)
            counts[outcome.winning_slot] += 1
            total_ticks += outcome.ticks
            if outcome.capture_mode == CAPTURE_FALLBACK:
                fallbacks += 1
                fallback_slots[outcome.winning_slot] = fallback_slots.get(outcome.winning_slot, 0) + 1
        duration = time.time() - t0

        table = board.multiplier_table()
        frequency = {s: c / n_rounds for s, c in counts.items()}
        rtp = {s: frequency[s] * table[s] for s in counts}

        warnings = []
        for s in sorted(rtp):
            if rtp[s] > self.rtp_ceiling:
                warnings.append(
                    f"Slot {s} returns {rtp[s]*100:.2f}% (> {self.rtp_ceiling*100:.0f}%): "
                    f"always betting it beats the house"
                )
        if fallbacks:
            warnings.append(f"{fallbacks} of {n_rounds} drops needed fallback capture "
                            f"(slots {sorted(fallback_slots)})")

        result = AuditResult(
            n_rounds=n_rounds,
            slot_counts=counts,
            slot_frequency=frequency,
            slot_rtp=rtp,
            fallback_count=fallbacks,
            fallback_slots=fallback_slots,
            mean_ticks=total_ticks / n_rounds,
            warnings=warnings,
            duration_seconds=duration,
            rounds_per_second=n_rounds / duration if duration > 0 else 0,
            seed=f"{self.base_seed}:drop",
        )
        logger.info(f"Audit of {n_rounds} drops: mean RTP {result.mean_rtp*100:.2f}%, "
                    f"{len(warnings)} warning(s)")
        return result
