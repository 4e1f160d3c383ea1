import unittest

from transferjob.models import Phase
from transferjob.progress import (
    PHASE_WINDOWS,
    POLL_CEILING,
    poll_progress,
    ratio,
    window_progress,
    window_progress_pair,
)


class ProgressTest(unittest.TestCase):
    def test_windows_are_contiguous_and_ordered(self) -> None:
        phases = sorted(Phase)
        self.assertEqual(phases, [Phase.CLEANING, Phase.UPLOADING, Phase.TRIGGERING, Phase.POLLING])
        self.assertEqual(PHASE_WINDOWS[phases[0]].lo, 0.0)
        self.assertEqual(PHASE_WINDOWS[phases[-1]].hi, 1.0)
        for earlier, later in zip(phases, phases[1:]):
            self.assertEqual(PHASE_WINDOWS[earlier].hi, PHASE_WINDOWS[later].lo)

    def test_phase_comparisons_follow_pipeline_order(self) -> None:
        # alphabetical order would put POLLING before UPLOADING
        self.assertTrue(Phase.POLLING > Phase.UPLOADING)
        self.assertTrue(Phase.POLLING >= Phase.UPLOADING)
        self.assertTrue(Phase.UPLOADING <= Phase.POLLING)
        self.assertTrue(Phase.CLEANING <= Phase.CLEANING)
        self.assertTrue(Phase.TRIGGERING >= Phase.TRIGGERING)
        self.assertFalse(Phase.CLEANING > Phase.TRIGGERING)
        self.assertFalse(Phase.POLLING <= Phase.TRIGGERING)
        self.assertEqual(max(Phase), Phase.POLLING)
        self.assertEqual(min(Phase), Phase.CLEANING)

    def test_mapping_and_clamping(self) -> None:
        self.assertAlmostEqual(window_progress(Phase.UPLOADING, 0.5), 0.475)
        self.assertEqual(window_progress(Phase.CLEANING, -3), 0.0)
        self.assertAlmostEqual(window_progress(Phase.CLEANING, 7), 0.10)

    def test_zero_total_completes_window(self) -> None:
        self.assertEqual(ratio(0, 0), 1.0)
        self.assertAlmostEqual(window_progress_pair(Phase.CLEANING, 0, 0), 0.10)

    def test_pair_sequence_is_non_decreasing(self) -> None:
        values = [window_progress_pair(Phase.UPLOADING, sent, 10) for sent in range(0, 11)]
        self.assertEqual(values, sorted(values))
        self.assertAlmostEqual(values[-1], 0.85)

    def test_poll_progress_never_reaches_ceiling(self) -> None:
        values = [poll_progress(attempt, 600) for attempt in range(1, 601)]
        self.assertEqual(values, sorted(values))
        self.assertGreater(values[0], 0.90)
        self.assertLess(values[-1], POLL_CEILING)
        self.assertAlmostEqual(values[1] - values[0], (0.99 - 0.90) / 600)


if __name__ == "__main__":
    unittest.main()
