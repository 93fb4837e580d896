"""Engine error taxonomy."""


class PlinkoError(Exception):
    """Base class for all drop engine errors."""


class InvalidSlot(PlinkoError, ValueError):
    """Payout or bet requested for a slot outside [1, N]."""

    def __init__(self, slot, slot_count: int):
        self.slot = slot
        self.slot_count = slot_count
        super().__init__(f"Invalid slot {slot!r}: expected an integer in [1, {slot_count}]")


class InvalidWager(PlinkoError, ValueError):
    """Wager is negative or not a finite number."""

    def __init__(self, wager):
        self.wager = wager
        super().__init__(f"Invalid wager {wager!r}: must be a finite number >= 0")


class EngineFault(PlinkoError, RuntimeError):
    """Tick budget exhausted and no fallback sink could be found.

    Fatal to the round that raised it. Inputs are deterministic, so retrying
    the same round reproduces the same fault.
    """
