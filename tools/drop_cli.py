#!/usr/bin/env python3
"""
PLINKDROP - Command Line

Usage:
    python -m tools.drop_cli board
    python -m tools.drop_cli board --dump-config
    python -m tools.drop_cli drop --seed 42 --slot 8 --wager 10
    python -m tools.drop_cli drop --entry-x 400 --trajectory out.json
    python -m tools.drop_cli audit --rounds 5000
    python -m tools.drop_cli verify --server-seed S --client-seed C --nonce 0 --slot 8
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.board_schema import validate_board_config
from config.settings import EngineSettings
from sim_engine.physics import PlinkoError, build_board, payout, run_round
from tools.drop_montecarlo import DropAudit
from tools.drop_rng import ProvablyFairDropper

console = Console()


def _cmd_board(args, board) -> int:
    if args.dump_config:
        console.print_json(board.config.model_dump_json(indent=2))
        return 0

    table = Table(title=f"Board {board.width:.0f}x{board.height:.0f} · {len(board.pegs)} pegs")
    table.add_column("Slot", justify="right")
    table.add_column("Center x", justify="right")
    table.add_column("Span")
    table.add_column("Multiplier", justify="right")
    for s in board.sinks:
        table.add_row(str(s.slot), f"{s.center_x:.1f}", f"[{s.left:.1f}, {s.right:.1f})", f"{s.multiplier:g}x")
    console.print(table)

    for w in validate_board_config(board.config):
        console.print(f"[yellow]⚠️  {w}[/yellow]")
    return 0


def _cmd_drop(args, board) -> int:
    outcome = run_round(board, args.entry_x, seed=args.seed)
    lines = [
        f"Entry x:      {outcome.entry_x:.3f}",
        f"Winning slot: [bold]{outcome.winning_slot}[/bold] "
        f"({board.multiplier_table()[outcome.winning_slot]:g}x)",
        f"Ticks:        {outcome.ticks} ({outcome.capture_mode})",
        f"Digest:       {outcome.digest()[:16]}…",
    ]
    if args.slot is not None:
        won = args.slot == outcome.winning_slot
        amount = payout(args.slot, board.multiplier_table(), args.wager) if won else 0.0
        verdict = "[green]WIN[/green]" if won else "[red]LOSS[/red]"
        lines.append(f"Bet:          {args.wager:g} on slot {args.slot} → {verdict}, payout {amount:g}")
    console.print(Panel("\n".join(lines), title="Drop"))

    if args.trajectory:
        Path(args.trajectory).write_text(json.dumps(outcome.to_dict(), indent=2))
        console.print(f"Trajectory written to {args.trajectory}")
    return 0


def _cmd_audit(args, board) -> int:
    n_rounds = min(args.rounds, EngineSettings.MC_MAX_ROUNDS)
    result = DropAudit(seed=args.seed).run(board, n_rounds=n_rounds)
    if args.json:
        console.print_json(result.to_json())
        return 0 if result.passed else 1

    table = Table(title=f"Slot distribution · {result.n_rounds:,} drops")
    table.add_column("Slot", justify="right")
    table.add_column("Hits", justify="right")
    table.add_column("Freq", justify="right")
    table.add_column("RTP", justify="right")
    for s in sorted(result.slot_counts):
        rtp = result.slot_rtp[s]
        rtp_text = f"{rtp*100:.2f}%"
        if rtp > 1.0:
            rtp_text = f"[red]{rtp_text}[/red]"
        table.add_row(str(s), f"{result.slot_counts[s]:,}",
                      f"{result.slot_frequency[s]*100:.2f}%", rtp_text)
    console.print(table)
    console.print(Panel(result.summary(), title="Audit"))
    return 0 if result.passed else 1


def _cmd_verify(args, board) -> int:
    ok = ProvablyFairDropper().verify(
        args.server_seed, args.client_seed, args.nonce, board,
        winning_slot=args.slot, trajectory_digest=args.digest,
        server_seed_hash=args.server_seed_hash,
    )
    console.print("✅ Round verified" if ok else "❌ Round does NOT match")
    return 0 if ok else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Plinko ball-drop engine")
    parser.add_argument("--log-level", default=EngineSettings.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p_board = sub.add_parser("board", help="Show board geometry")
    p_board.add_argument("--dump-config", action="store_true")

    p_drop = sub.add_parser("drop", help="Drop one ball")
    p_drop.add_argument("--entry-x", type=float, default=None)
    p_drop.add_argument("--seed", type=str, default=None)
    p_drop.add_argument("--slot", type=int, default=None, help="Slot to bet on")
    p_drop.add_argument("--wager", type=float, default=0.0)
    p_drop.add_argument("--trajectory", type=str, default=None, help="Write outcome JSON here")

    p_audit = sub.add_parser("audit", help="Measure the slot distribution")
    p_audit.add_argument("--rounds", type=int, default=EngineSettings.MC_DEFAULT_ROUNDS)
    p_audit.add_argument("--seed", type=int, default=42)
    p_audit.add_argument("--json", action="store_true")

    p_verify = sub.add_parser("verify", help="Verify a provably fair round")
    p_verify.add_argument("--server-seed", required=True)
    p_verify.add_argument("--client-seed", required=True)
    p_verify.add_argument("--nonce", type=int, required=True)
    p_verify.add_argument("--slot", type=int, required=True)
    p_verify.add_argument("--digest", default=None)
    p_verify.add_argument("--server-seed-hash", default=None)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    board = build_board(EngineSettings.board_config())
    handlers = {
        "board": _cmd_board,
        "drop": _cmd_drop,
        "audit": _cmd_audit,
        "verify": _cmd_verify,
    }
    try:
        return handlers[args.command](args, board)
    except (PlinkoError, ValueError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 2


if __name__ == "__main__":
    sys.exit(main())
