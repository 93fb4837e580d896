"""
PLINKDROP - Payout Calculator & Bet Settlement

payout() is the pure slot -> winnings mapping. settle_bets() applies it to the
bets of a finished round: a bet wins only if its slot is the captured slot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence, Union

from sim_engine.physics.errors import InvalidSlot, InvalidWager
from sim_engine.physics.rounds import RoundOutcome

# Either {slot: multiplier} keyed 1..N, or a sequence where position 0 is slot 1
MultiplierTable = Union[Mapping[int, float], Sequence[float]]


def multiplier_for(slot_number: int, multiplier_table: MultiplierTable) -> float:
    """Look up a slot's multiplier. Raises InvalidSlot outside [1, N]."""
    n = len(multiplier_table)
    if isinstance(slot_number, bool) or not isinstance(slot_number, int) \
            or not 1 <= slot_number <= n:
        raise InvalidSlot(slot_number, n)
    if isinstance(multiplier_table, Mapping):
        if slot_number not in multiplier_table:
            raise InvalidSlot(slot_number, n)
        return float(multiplier_table[slot_number])
    return float(multiplier_table[slot_number - 1])


def payout(slot_number: int, multiplier_table: MultiplierTable, wager: float) -> float:
    """wager * multiplier_table[slot_number]. A zero wager (free play) pays 0."""
    if isinstance(wager, bool) or not isinstance(wager, (int, float)) \
            or not math.isfinite(wager) or wager < 0:
        raise InvalidWager(wager)
    return wager * multiplier_for(slot_number, multiplier_table)


@dataclass(frozen=True)
class Bet:
    player_id: str
    slot_number: int
    amount: float


@dataclass(frozen=True)
class BetSettlement:
    bet: Bet
    multiplier: float
    is_winner: bool
    payout: float

    def to_dict(self) -> dict:
        return {
            "player_id": self.bet.player_id,
            "slot_number": self.bet.slot_number,
            "amount": self.bet.amount,
            "multiplier": self.multiplier,
            "is_winner": self.is_winner,
            "payout": self.payout,
        }


def settle_bets(outcome: RoundOutcome, bets: Iterable[Bet],
                multiplier_table: MultiplierTable) -> list[BetSettlement]:
    """Settle every bet against the captured slot.

    All bets are validated before any is settled, so one bad slot fails the
    whole batch instead of leaving it half settled.
    """
    bets = list(bets)
    for bet in bets:
        multiplier_for(bet.slot_number, multiplier_table)
        if isinstance(bet.amount, bool) or not isinstance(bet.amount, (int, float)) \
                or not math.isfinite(bet.amount) or bet.amount < 0:
            raise InvalidWager(bet.amount)

    settlements = []
    for bet in bets:
        won = bet.slot_number == outcome.winning_slot
        settlements.append(BetSettlement(
            bet=bet,
            multiplier=multiplier_for(bet.slot_number, multiplier_table),
            is_winner=won,
            payout=payout(bet.slot_number, multiplier_table, bet.amount) if won else 0.0,
        ))
    return settlements
