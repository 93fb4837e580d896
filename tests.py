#!/usr/bin/env python3
"""
PLINKDROP - Engine Test Suite

Run: python tests.py
     python tests.py -v                # verbose
     python tests.py TestPayout        # run specific class

Test categories:
  TestBoardConfig       - schema validation, soft warnings, defaults
  TestGeometry          - peg lattice, sink row, multiplier table
  TestCollisionResolver - peg bounce, margins, sink capture, tie-breaks
  TestBallSimulator     - tick ordering, capture, fallback, EngineFault
  TestRoundOutcome      - determinism, invariants, entry policy, sampling
  TestPayout            - linearity, free play, invalid slots and wagers
  TestSettlement        - bet settlement against an outcome
"""

import math
import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError

from config.board_schema import (
    DEFAULT_MULTIPLIERS, BoardConfig, EntryConfig, EntryJitter, PegLayout,
    PhysicsConfig, SinkLayout, default_board_config, validate_board_config,
)
from sim_engine.physics import (
    CAPTURE_FALLBACK, CAPTURE_SINK, Ball, BallSimulator, Bet, Board, EngineFault,
    InvalidSlot, InvalidWager, Peg, build_board, payout, resolve, resolve_entry_x,
    run_round, settle_bets,
)
from sim_engine.physics.collision import (
    bounce_off_peg, clamp_to_margins, nearest_sink, resolve_pegs, resolve_sinks,
)


def _no_pegs(**physics) -> Board:
    """Default board with every peg removed (rows [2, 2) is empty)."""
    return build_board(BoardConfig(
        pegs=PegLayout(rows=2),
        physics=PhysicsConfig(**physics),
        entry=EntryConfig(mode=EntryJitter.NONE),
    ))


DEFAULT_BOARD = build_board()
EPS = 1e-9


# ============================================================
# Configuration
# ============================================================

class TestBoardConfig(unittest.TestCase):

    def test_defaults_match_published_board(self):
        cfg = default_board_config()
        self.assertEqual((cfg.width, cfg.height), (800, 800))
        self.assertEqual(cfg.physics.gravity, 0.6)
        self.assertEqual(cfg.physics.horizontal_friction, 0.4)
        self.assertEqual(cfg.physics.vertical_friction, 0.8)
        self.assertEqual(cfg.physics.ball_radius, 7)
        self.assertEqual(cfg.pegs.radius, 4)
        self.assertEqual(cfg.sinks.count, 15)
        self.assertEqual(cfg.entry.mode, EntryJitter.RANDOM)

    def test_default_table_is_symmetric_and_edge_weighted(self):
        mults = [DEFAULT_MULTIPLIERS[s] for s in range(1, 16)]
        self.assertEqual(mults, mults[::-1])
        self.assertEqual(mults[0], 8)
        self.assertEqual(mults[7], 5)
        self.assertEqual(max(mults), mults[0])

    def test_table_must_cover_every_slot(self):
        with self.assertRaises(ValidationError):
            SinkLayout(count=3)
        ok = SinkLayout(count=3, multipliers={1: 2, 2: 1, 3: 2})
        self.assertEqual(ok.count, 3)

    def test_negative_multiplier_rejected(self):
        table = dict(DEFAULT_MULTIPLIERS)
        table[4] = -1
        with self.assertRaises(ValidationError):
            SinkLayout(multipliers=table)

    def test_board_too_narrow_for_ball(self):
        with self.assertRaises(ValidationError):
            BoardConfig(width=10)

    def test_default_config_only_warns_about_overlap(self):
        warnings = validate_board_config(default_board_config())
        self.assertEqual(len(warnings), 1)
        self.assertIn("overlap", warnings[0])

    def test_asymmetric_table_warns(self):
        cfg = BoardConfig(sinks=SinkLayout(count=3, multipliers={1: 5, 2: 1, 3: 2}))
        warnings = validate_board_config(cfg)
        self.assertTrue(any("symmetric" in w for w in warnings))

    def test_config_round_trips_through_json(self):
        cfg = default_board_config()
        again = BoardConfig.model_validate_json(cfg.model_dump_json())
        self.assertEqual(again.model_dump(), cfg.model_dump())


# ============================================================
# Geometry
# ============================================================

class TestGeometry(unittest.TestCase):

    def test_peg_count(self):
        # rows 2..17, row r holds r + 1 pegs -> 3 + 4 + ... + 18
        self.assertEqual(len(DEFAULT_BOARD.pegs), sum(range(3, 19)))

    def test_first_row_centered(self):
        first = [p for p in DEFAULT_BOARD.pegs if p.y == 70]
        self.assertEqual([p.x for p in first], [364, 400, 436])

    def test_rows_are_horizontally_symmetric(self):
        rows = {}
        for p in DEFAULT_BOARD.pegs:
            rows.setdefault(p.y, []).append(p.x)
        for xs in rows.values():
            mirrored = sorted(800 - x for x in xs)
            for a, b in zip(sorted(xs), mirrored):
                self.assertAlmostEqual(a, b)

    def test_peg_columns_align_every_other_row(self):
        xs_row2 = {p.x for p in DEFAULT_BOARD.pegs if p.y == 2 * 35}
        xs_row4 = {p.x for p in DEFAULT_BOARD.pegs if p.y == 4 * 35}
        self.assertTrue(xs_row2 <= xs_row4)

    def test_sinks_ordered_and_centered(self):
        sinks = DEFAULT_BOARD.sinks
        self.assertEqual([s.slot for s in sinks], list(range(1, 16)))
        centers = [s.center_x for s in sinks]
        self.assertEqual(centers, sorted(centers))
        self.assertEqual(centers[0], 148)
        self.assertEqual(centers[7], 400)
        self.assertEqual(centers[-1], 652)
        self.assertAlmostEqual(centers[0] - 0, 800 - centers[-1])

    def test_sink_trigger_line(self):
        for s in DEFAULT_BOARD.sinks:
            self.assertEqual(s.y, 630)
            self.assertEqual(s.trigger_y, 606)
            self.assertEqual(s.right - s.left, 48)

    def test_multiplier_table_from_board(self):
        self.assertEqual(DEFAULT_BOARD.multiplier_table(), {k: float(v) for k, v in DEFAULT_MULTIPLIERS.items()})

    def test_build_is_deterministic(self):
        self.assertEqual(build_board(), build_board())

    def test_margins(self):
        self.assertEqual(DEFAULT_BOARD.margin_left, 7)
        self.assertEqual(DEFAULT_BOARD.margin_right, 793)


# ============================================================
# Collision Resolver
# ============================================================

class TestCollisionResolver(unittest.TestCase):

    def test_head_on_bounce_damps_vertical(self):
        peg = DEFAULT_BOARD.pegs[1]                 # (400, 70)
        ball = Ball(x=400, y=60, radius=7, vx=0, vy=5)
        bounce_off_peg(ball, peg, 10, 0.4, 0.8)
        self.assertAlmostEqual(ball.vx, 0.0)
        self.assertAlmostEqual(ball.vy, -4.0)       # speed 5 * vertical 0.8, pointing away
        self.assertAlmostEqual(ball.y, 59.0)        # pushed out by the 1-unit overlap
        self.assertAlmostEqual(math.hypot(ball.x - peg.x, ball.y - peg.y), 11.0)

    def test_side_bounce_damps_horizontal(self):
        peg = DEFAULT_BOARD.pegs[1]
        ball = Ball(x=410, y=70, radius=7, vx=-3, vy=4)
        bounce_off_peg(ball, peg, 10, 0.4, 0.8)
        self.assertAlmostEqual(ball.vx, 2.0)        # speed 5 * horizontal 0.4
        self.assertAlmostEqual(ball.vy, 0.0)
        self.assertAlmostEqual(ball.x, 411.0)

    def test_resolve_pegs_reports_hits(self):
        ball = Ball(x=400, y=60, radius=7, vx=0, vy=5)
        hits = resolve_pegs(ball, DEFAULT_BOARD)
        self.assertEqual(hits, [1])
        for p in DEFAULT_BOARD.pegs:
            self.assertGreaterEqual(math.hypot(ball.x - p.x, ball.y - p.y), 11 - EPS)

    def test_two_pegs_in_one_tick_resolve_in_lattice_order(self):
        # Pegs 12 apart so one ball can overlap both; the default lattice never allows it
        pegs = (Peg(x=390, y=70, radius=4), Peg(x=402, y=70, radius=4))
        board = Board(pegs=pegs, sinks=DEFAULT_BOARD.sinks, config=default_board_config())
        ball = Ball(x=396, y=62, radius=7, vx=0, vy=5)

        expected = Ball(x=396, y=62, radius=7, vx=0, vy=5)
        for peg in pegs:
            distance = math.hypot(expected.x - peg.x, expected.y - peg.y)
            self.assertLess(distance, 11)           # still overlapping after the first push
            bounce_off_peg(expected, peg, distance, 0.4, 0.8)

        self.assertEqual(resolve_pegs(ball, board), [0, 1])
        self.assertAlmostEqual(ball.vx, expected.vx)
        self.assertAlmostEqual(ball.vy, expected.vy)
        self.assertAlmostEqual(ball.x, expected.x)
        self.assertAlmostEqual(ball.y, expected.y)

        # Reversed lattice order gives a different cumulative result
        flipped = Board(pegs=pegs[::-1], sinks=DEFAULT_BOARD.sinks, config=default_board_config())
        other = Ball(x=396, y=62, radius=7, vx=0, vy=5)
        resolve_pegs(other, flipped)
        self.assertNotAlmostEqual(other.x, ball.x)

    def test_touching_is_not_a_collision(self):
        ball = Ball(x=400, y=59, radius=7, vx=0, vy=1)
        self.assertEqual(resolve_pegs(ball, DEFAULT_BOARD), [])

    def test_nothing_touched_returns_none(self):
        ball = Ball(x=50, y=20, radius=7, vx=0, vy=1)
        self.assertIsNone(resolve(ball, DEFAULT_BOARD))

    def test_left_margin_clamps_and_reflects(self):
        ball = Ball(x=3, y=20, radius=7, vx=-2, vy=1)
        self.assertTrue(clamp_to_margins(ball, DEFAULT_BOARD))
        self.assertEqual((ball.x, ball.vx), (7, 2))

    def test_right_margin_clamps_and_reflects(self):
        ball = Ball(x=798, y=20, radius=7, vx=3, vy=1)
        event = resolve(ball, DEFAULT_BOARD)
        self.assertTrue(event.clamped)
        self.assertFalse(event.captured)
        self.assertEqual((ball.x, ball.vx), (793, -3))

    def test_sink_capture(self):
        ball = Ball(x=400, y=600, radius=7, vx=1, vy=9)
        self.assertEqual(resolve_sinks(ball, DEFAULT_BOARD), 8)
        self.assertTrue(ball.captured)
        self.assertEqual((ball.vx, ball.vy), (0.0, 0.0))

    def test_above_trigger_line_not_captured(self):
        ball = Ball(x=400, y=598, radius=7, vx=0, vy=1)
        self.assertIsNone(resolve_sinks(ball, DEFAULT_BOARD))
        self.assertFalse(ball.captured)

    def test_overlapping_spans_lowest_slot_wins(self):
        # x=380 lies in slot 7 [340, 388) and slot 8 [376, 424)
        ball = Ball(x=380, y=605, radius=7)
        self.assertEqual(resolve_sinks(ball, DEFAULT_BOARD), 7)

    def test_outside_every_span_not_captured(self):
        ball = Ball(x=60, y=700, radius=7)
        self.assertIsNone(resolve_sinks(ball, DEFAULT_BOARD))

    def test_nearest_sink(self):
        self.assertEqual(nearest_sink(Ball(x=50, y=0, radius=7), DEFAULT_BOARD).slot, 1)
        self.assertEqual(nearest_sink(Ball(x=790, y=0, radius=7), DEFAULT_BOARD).slot, 15)
        # Equidistant from slot 7 (364) and slot 8 (400)
        self.assertEqual(nearest_sink(Ball(x=382, y=0, radius=7), DEFAULT_BOARD).slot, 7)

    def test_nearest_sink_empty_board(self):
        empty = Board(pegs=(), sinks=(), config=default_board_config())
        self.assertIsNone(nearest_sink(Ball(x=400, y=0, radius=7), empty))


# ============================================================
# Ball Simulator
# ============================================================

class TestBallSimulator(unittest.TestCase):

    def test_gravity_then_integration(self):
        sim = BallSimulator.at_entry(_no_pegs(), 400)
        result = sim.step()
        self.assertFalse(result.captured)
        self.assertEqual(result.tick, 1)
        self.assertAlmostEqual(sim.ball.vy, 0.6)
        self.assertAlmostEqual(sim.ball.y, 50.6)

    def test_straight_drop_captured_in_center_sink(self):
        sim = BallSimulator.at_entry(_no_pegs(), 400)
        results = list(sim.run())
        last = results[-1]
        self.assertTrue(last.captured)
        self.assertFalse(last.fallback)
        self.assertEqual(last.slot, 8)
        # y_n = 50 + 0.3 n (n + 1) first reaches 599 at n = 43
        self.assertEqual(last.tick, 43)
        self.assertEqual([r.tick for r in results], list(range(1, 44)))
        self.assertEqual(sim.ball.x, 400)

    def test_step_after_capture_is_idempotent(self):
        sim = BallSimulator.at_entry(_no_pegs(), 400)
        for _ in sim.run():
            pass
        again = sim.step()
        self.assertTrue(again.captured)
        self.assertEqual(again.tick, 43)

    def test_escape_below_floor_falls_back(self):
        sim = BallSimulator.at_entry(_no_pegs(), 50)
        last = list(sim.run())[-1]
        self.assertTrue(last.fallback)
        self.assertEqual(last.slot, 1)
        self.assertEqual(last.tick, 50)

    def test_tick_budget_falls_back(self):
        sim = BallSimulator.at_entry(_no_pegs(tick_budget=5), 400)
        results = list(sim.run())
        self.assertEqual(len(results), 5)
        self.assertTrue(results[-1].fallback)
        self.assertEqual(results[-1].slot, 8)

    def test_no_sinks_raises_engine_fault(self):
        empty = Board(pegs=(), sinks=(), config=default_board_config())
        sim = BallSimulator.at_entry(empty, 400)
        with self.assertRaises(EngineFault):
            list(sim.run())

    def test_invariants_hold_every_tick(self):
        board = DEFAULT_BOARD
        contact = board.config.physics.ball_radius + board.config.pegs.radius
        for seed in range(12):
            sim = BallSimulator.at_entry(board, resolve_entry_x(board, seed=seed))
            for _ in sim.run():
                b = sim.ball
                self.assertTrue(board.margin_left <= b.x <= board.margin_right)
                for p in board.pegs:
                    self.assertGreaterEqual(math.hypot(b.x - p.x, b.y - p.y), contact - 1e-6)
            self.assertTrue(sim.finished)


# ============================================================
# Round Outcome Engine
# ============================================================

class TestRoundOutcome(unittest.TestCase):

    def test_determinism_same_seed(self):
        a = run_round(DEFAULT_BOARD, seed=1234)
        b = run_round(DEFAULT_BOARD, seed=1234)
        self.assertEqual(a.trajectory, b.trajectory)
        self.assertEqual(a.winning_slot, b.winning_slot)
        self.assertEqual(a.digest(), b.digest())

    def test_determinism_explicit_entry(self):
        a = run_round(DEFAULT_BOARD, 413.0)
        b = run_round(DEFAULT_BOARD, 413.0)
        self.assertEqual(a, b)

    def test_slot_range(self):
        for seed in range(25):
            outcome = run_round(DEFAULT_BOARD, seed=seed)
            self.assertTrue(1 <= outcome.winning_slot <= 15)

    def test_trajectory_ordered_and_ends_at_capture(self):
        outcome = run_round(DEFAULT_BOARD, seed="room-1:round-1")
        ticks = [p.tick for p in outcome.trajectory]
        self.assertEqual(ticks[0], 0)
        self.assertEqual(ticks, sorted(set(ticks)))
        self.assertEqual(ticks[-1], outcome.ticks)
        self.assertEqual(outcome.trajectory[0].x, outcome.entry_x)

    def test_boundary_containment_in_trajectory(self):
        for seed in range(10):
            outcome = run_round(DEFAULT_BOARD, seed=seed)
            for p in outcome.trajectory:
                self.assertTrue(7 <= p.x <= 793)

    def test_straight_center_drop(self):
        outcome = run_round(_no_pegs(), 400)
        self.assertEqual(outcome.winning_slot, 8)
        self.assertEqual(outcome.capture_mode, CAPTURE_SINK)
        self.assertTrue(all(p.x == 400 for p in outcome.trajectory))

    def test_straight_center_drop_without_explicit_entry(self):
        # Entry mode "none" starts at the exact center
        outcome = run_round(_no_pegs())
        self.assertEqual(outcome.entry_x, 400)
        self.assertEqual(outcome.winning_slot, 8)

    def test_adversarial_board_terminates_via_fallback(self):
        outcome = run_round(_no_pegs(tick_budget=200), 50)
        self.assertEqual(outcome.capture_mode, CAPTURE_FALLBACK)
        self.assertEqual(outcome.winning_slot, 1)
        self.assertLessEqual(outcome.ticks, 200)

    def test_engine_fault_propagates(self):
        empty = Board(pegs=(), sinks=(), config=default_board_config())
        with self.assertRaises(EngineFault):
            run_round(empty, 400)

    def test_entry_outside_margins_rejected(self):
        with self.assertRaises(ValueError):
            run_round(DEFAULT_BOARD, 3.0)
        with self.assertRaises(ValueError):
            run_round(DEFAULT_BOARD, 799.0)

    def test_entry_modes(self):
        fixed = build_board(BoardConfig(entry=EntryConfig(mode=EntryJitter.FIXED)))
        self.assertEqual(resolve_entry_x(fixed), 413)
        none = build_board(BoardConfig(entry=EntryConfig(mode=EntryJitter.NONE)))
        self.assertEqual(resolve_entry_x(none), 400)
        for seed in range(20):
            x = resolve_entry_x(DEFAULT_BOARD, seed=seed)
            self.assertTrue(370 <= x <= 430)
        self.assertEqual(resolve_entry_x(DEFAULT_BOARD, seed="abc"),
                         resolve_entry_x(DEFAULT_BOARD, seed="abc"))

    def test_sample_stride_decimates_but_keeps_capture(self):
        board = _no_pegs(sample_stride=10)
        outcome = run_round(board, 400)
        self.assertEqual([p.tick for p in outcome.trajectory], [0, 10, 20, 30, 40, 43])

    def test_to_dict(self):
        outcome = run_round(_no_pegs(), 400)
        data = outcome.to_dict()
        self.assertEqual(data["winning_slot"], 8)
        self.assertEqual(data["samples"], 44)
        self.assertEqual(len(data["trajectory"]), 44)
        self.assertEqual(data["digest"], outcome.digest())
        self.assertNotIn("trajectory", outcome.to_dict(include_trajectory=False))


# ============================================================
# Payout Calculator
# ============================================================

class TestPayout(unittest.TestCase):

    def test_default_table_lookups(self):
        self.assertEqual(payout(1, DEFAULT_MULTIPLIERS, 10), 80)
        self.assertEqual(payout(8, DEFAULT_MULTIPLIERS, 10), 50)

    def test_linearity(self):
        for slot, mult in DEFAULT_MULTIPLIERS.items():
            self.assertEqual(payout(slot, DEFAULT_MULTIPLIERS, 7.5), 7.5 * mult)

    def test_free_play(self):
        for slot in DEFAULT_MULTIPLIERS:
            self.assertEqual(payout(slot, DEFAULT_MULTIPLIERS, 0), 0)

    def test_invalid_slots(self):
        for bad in (0, 16, -1, 2.5, "3", None, True):
            with self.assertRaises(InvalidSlot):
                payout(bad, DEFAULT_MULTIPLIERS, 100)

    def test_invalid_slot_is_value_error(self):
        with self.assertRaises(ValueError) as ctx:
            payout(0, DEFAULT_MULTIPLIERS, 100)
        self.assertEqual(ctx.exception.slot, 0)
        self.assertEqual(ctx.exception.slot_count, 15)

    def test_invalid_wager(self):
        for bad in (-1, float("nan"), float("inf")):
            with self.assertRaises(InvalidWager):
                payout(1, DEFAULT_MULTIPLIERS, bad)

    def test_sequence_table(self):
        table = [2.0, 0.5, 2.0]
        self.assertEqual(payout(1, table, 4), 8)
        self.assertEqual(payout(2, table, 4), 2)
        with self.assertRaises(InvalidSlot):
            payout(4, table, 4)


# ============================================================
# Bet Settlement
# ============================================================

class TestSettlement(unittest.TestCase):

    def setUp(self):
        self.board = _no_pegs()
        self.outcome = run_round(self.board, 400)   # slot 8
        self.table = self.board.multiplier_table()

    def test_winners_and_losers(self):
        bets = [Bet("alice", 8, 10), Bet("bob", 1, 10), Bet("carol", 8, 0)]
        result = settle_bets(self.outcome, bets, self.table)
        self.assertEqual([s.is_winner for s in result], [True, False, True])
        self.assertEqual([s.payout for s in result], [50, 0, 0])
        self.assertEqual([s.multiplier for s in result], [5, 8, 5])
        self.assertEqual(result[0].to_dict()["player_id"], "alice")

    def test_invalid_bet_fails_whole_batch(self):
        with self.assertRaises(InvalidSlot):
            settle_bets(self.outcome, [Bet("alice", 8, 10), Bet("bob", 0, 10)], self.table)

    def test_negative_bet_rejected(self):
        with self.assertRaises(InvalidWager):
            settle_bets(self.outcome, [Bet("alice", 8, -5)], self.table)

    def test_no_bets(self):
        self.assertEqual(settle_bets(self.outcome, [], self.table), [])


if __name__ == "__main__":
    unittest.main()
