"""
PLINKDROP - Runtime Settings

Environment-driven defaults for the service and CLI. The engine itself never
touches the environment: this module reads .env / os.environ once and turns
the result into a BoardConfig that callers pass to build_board().
"""

import os
from dotenv import load_dotenv

from config.board_schema import BoardConfig, EntryConfig, EntryJitter, PhysicsConfig

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


class EngineSettings:

    # --- Simulation ---
    TICK_BUDGET = _env_int("PLINKO_TICK_BUDGET", 2000)
    SAMPLE_STRIDE = _env_int("PLINKO_SAMPLE_STRIDE", 1)      # 1 = every tick
    ENTRY_JITTER = os.getenv("PLINKO_ENTRY_JITTER", EntryJitter.RANDOM.value)

    # --- Provably fair ---
    # Fixed server seed for local replay. Empty means every session generates its own.
    SERVER_SEED = os.getenv("PLINKO_SERVER_SEED", "")

    # --- Audit ---
    MC_DEFAULT_ROUNDS = _env_int("MC_DEFAULT_ROUNDS", 2000)
    MC_MAX_ROUNDS = _env_int("MC_MAX_ROUNDS", 50_000)

    # --- Service ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    PORT = _env_int("PORT", 8080)

    @classmethod
    def board_config(cls, **overrides) -> BoardConfig:
        """BoardConfig with the environment's physics and entry settings applied.

        Keyword overrides replace whole top-level sections (e.g. pegs=PegLayout(rows=2)).
        """
        base = BoardConfig()
        physics = PhysicsConfig(
            **{**base.physics.model_dump(),
               "tick_budget": cls.TICK_BUDGET,
               "sample_stride": cls.SAMPLE_STRIDE}
        )
        entry = EntryConfig(**{**base.entry.model_dump(), "mode": EntryJitter(cls.ENTRY_JITTER)})
        fields = {**base.model_dump(), "physics": physics, "entry": entry}
        fields.update(overrides)
        return BoardConfig(**fields)
