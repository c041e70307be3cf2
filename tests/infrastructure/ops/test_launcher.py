import threading
import unittest

import numpy as np

from softpool.domain._errors import KernelFaultError
from softpool.infrastructure._config import LaunchConfig
from softpool.infrastructure.ops._launcher import (
    AtomicAccumulator,
    block_lanes,
    launch,
    plan_launch,
)


class TestPlanLaunch(unittest.TestCase):
    def test_empty_launch(self):
        plan = plan_launch(0, LaunchConfig())
        self.assertEqual(plan.blocks, 0)
        self.assertEqual(plan.rounds, 0)

    def test_single_partial_block(self):
        plan = plan_launch(10, LaunchConfig(threads_per_block=1024))
        self.assertEqual(plan.blocks, 1)
        self.assertEqual(plan.grid_stride, 1024)
        self.assertEqual(plan.rounds, 1)

    def test_grid_stride_when_blocks_are_capped(self):
        plan = plan_launch(10, LaunchConfig(threads_per_block=4, max_blocks=2))
        self.assertEqual(plan.blocks, 2)
        self.assertEqual(plan.grid_stride, 8)
        self.assertEqual(plan.rounds, 2)

    def test_block_lanes_cover_every_cell_once(self):
        for cells, tpb, max_blocks in ((10, 4, 2), (37, 5, 3), (8, 8, 1), (1, 3, 9)):
            plan = plan_launch(
                cells, LaunchConfig(threads_per_block=tpb, max_blocks=max_blocks)
            )
            seen = np.concatenate(
                [
                    lanes
                    for b in range(plan.blocks)
                    for lanes in block_lanes(b, plan)
                ]
            )
            np.testing.assert_array_equal(np.sort(seen), np.arange(cells))

    def test_lane_walks_with_grid_stride(self):
        plan = plan_launch(10, LaunchConfig(threads_per_block=4, max_blocks=2))
        rounds = list(block_lanes(1, plan))
        np.testing.assert_array_equal(rounds[0], [4, 5, 6, 7])
        self.assertEqual(len(rounds), 1)  # 12 >= 10: second round is empty

        rounds = list(block_lanes(0, plan))
        np.testing.assert_array_equal(rounds[1], [8, 9])


class TestLaunch(unittest.TestCase):
    def _run_counting(self, config: LaunchConfig, cells: int) -> np.ndarray:
        hits = np.zeros(cells, dtype=np.int64)
        acc = AtomicAccumulator(hits)

        def body(lanes):
            acc.add(lanes, np.ones_like(lanes))

        stats = launch("count", 1, body, cells, config)
        self.assertEqual(stats.cells, cells)
        return hits

    def test_serial_launch_visits_every_cell_once(self):
        hits = self._run_counting(LaunchConfig(threads_per_block=3, num_workers=1), 50)
        np.testing.assert_array_equal(hits, np.ones(50, dtype=np.int64))

    def test_threaded_launch_visits_every_cell_once(self):
        cfg = LaunchConfig(threads_per_block=7, max_blocks=4, num_workers=4)
        hits = self._run_counting(cfg, 1000)
        np.testing.assert_array_equal(hits, np.ones(1000, dtype=np.int64))

    def test_zero_cells_never_calls_body(self):
        def body(lanes):
            raise AssertionError("body must not run")

        stats = launch("noop", 2, body, 0, LaunchConfig())
        self.assertEqual(stats.blocks, 0)

    def test_fault_is_raised_after_launch_with_cause(self):
        buf = np.zeros(8)

        def body(lanes):
            buf[lanes] = 1.0  # lanes >= 8 raise IndexError

        cfg = LaunchConfig(threads_per_block=4, max_blocks=8, num_workers=3)
        with self.assertRaises(KernelFaultError) as cm:
            launch("softpool_forward", 2, body, 16, cfg)

        err = cm.exception
        self.assertEqual(err.op, "softpool_forward")
        self.assertEqual(err.rank, 2)
        self.assertEqual(err.block, 2)
        self.assertIsInstance(err.__cause__, IndexError)
        self.assertIn("softpool_forward2d", str(err))
        # every healthy block still ran
        np.testing.assert_array_equal(buf, np.ones(8))

    def test_fault_in_serial_launch(self):
        def body(lanes):
            raise FloatingPointError("boom")

        with self.assertRaises(KernelFaultError) as cm:
            launch("softpool_backward", 3, body, 5, LaunchConfig(num_workers=1))
        self.assertEqual(cm.exception.block, 0)
        self.assertIsInstance(cm.exception.__cause__, FloatingPointError)


class TestAtomicAccumulator(unittest.TestCase):
    def test_repeated_indices_accumulate(self):
        target = np.zeros(4)
        acc = AtomicAccumulator(target)
        acc.add(np.array([0, 0, 3]), np.array([1.0, 2.0, 5.0]))
        np.testing.assert_array_equal(target, [3.0, 0.0, 0.0, 5.0])

    def test_writes_through_to_multidim_target(self):
        target = np.zeros((2, 3))
        AtomicAccumulator(target).add(np.array([4]), np.array([2.5]))
        self.assertEqual(target[1, 1], 2.5)

    def test_concurrent_adds_do_not_lose_updates(self):
        target = np.zeros(16)
        acc = AtomicAccumulator(target)
        idx = np.arange(16).repeat(10)

        def worker():
            for _ in range(50):
                acc.add(idx, np.ones(idx.shape[0]))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        np.testing.assert_array_equal(target, np.full(16, 8 * 50 * 10.0))

    def test_rejects_non_contiguous_target(self):
        with self.assertRaises(ValueError):
            AtomicAccumulator(np.zeros((4, 4))[:, ::2])


if __name__ == "__main__":
    unittest.main()
