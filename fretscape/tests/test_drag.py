import unittest

from fretscape import drag
from fretscape.drag import Dragging, Idle, PendingCopy
from fretscape.lattice import V1, Brick, LatticeFrame, Placement


def _frame():
    return LatticeFrame(placements=(Placement(Brick(), 10, 6),))


class TestDragStateMachine(unittest.TestCase):
    def test_press_miss_stays_idle(self):
        frame = _frame()
        state, placements = drag.press(frame, (1.0, 1.0), 0.0, V1)
        self.assertIsInstance(state, Idle)
        self.assertEqual(placements, frame.placements)

    def test_press_hit_waits_for_hold(self):
        state, placements = drag.press(_frame(), (12.5, 7.5), 100.0, V1)
        self.assertIsInstance(state, PendingCopy)
        self.assertEqual(state.source_index, 0)
        self.assertFalse(state.due(1099.0))
        self.assertTrue(state.due(1100.0))
        self.assertEqual(len(placements), 1)

    def test_drift_cancels_pending_copy(self):
        frame = _frame()
        state, _ = drag.press(frame, (12.5, 7.5), 0.0, V1)
        state, _ = drag.move(state, frame, (12.7, 7.5))
        self.assertIsInstance(state, PendingCopy)
        state, placements = drag.move(state, frame, (13.0, 7.5))
        self.assertIsInstance(state, Idle)
        self.assertEqual(len(placements), 1)

    def test_release_before_hold_does_nothing(self):
        frame = _frame()
        state, _ = drag.press(frame, (12.5, 7.5), 0.0, V1)
        state, placements = drag.release(state, frame)
        self.assertIsInstance(state, Idle)
        self.assertEqual(placements, frame.placements)

    def test_hold_clones_and_drags_copy(self):
        frame = _frame()
        state, _ = drag.press(frame, (12.5, 7.5), 0.0, V1)
        state, placements = drag.hold_elapsed(state, frame, V1)
        self.assertIsInstance(state, Dragging)
        self.assertEqual(state.item_index, 1)
        self.assertEqual(len(placements), 2)
        self.assertEqual(placements[1].x_cw, 10)
        self.assertEqual(placements[1].y_cw, 6)
        self.assertIsNot(placements[1].brick, placements[0].brick)
        self.assertEqual(state.session.anchor, (14, 7))

        frame = frame.with_placements(placements)
        state, placements = drag.move(state, frame, (14.6, 5.6))
        self.assertEqual((placements[1].x_cw, placements[1].y_cw), (12.0, 4.0))
        # The source placement never moves
        self.assertEqual((placements[0].x_cw, placements[0].y_cw), (10, 6))

    def test_moves_stay_on_line_and_release_resnaps(self):
        frame = _frame()
        state, placements = drag.press(frame, (12.5, 7.5), 0.0, V1, immediate=True)
        self.assertIsInstance(state, Dragging)
        anchor = state.session.anchor
        for target in [(15.0, 9.0), (18.3, 2.2), (11.1, 7.7), (15.7, 4.4)]:
            frame = frame.with_placements(placements)
            state, placements = drag.move(state, frame, target)
            origin = placements[1].origin_cell()
            cross = (origin[0] - anchor[0]) * V1[1] - (origin[1] - anchor[1]) * V1[0]
            self.assertAlmostEqual(cross, 0.0, delta=1e-9)

        # t = 1.6 along V1 from the anchor, then re-snapped to (18, 3)
        frame = frame.with_placements(placements)
        state, placements = drag.move(state, frame, (15.7, 4.3))
        origin = placements[1].origin_cell()
        self.assertAlmostEqual(origin[0], 17.2)
        self.assertAlmostEqual(origin[1], 3.8)
        state, placements = drag.release(state, frame.with_placements(placements))
        self.assertIsInstance(state, Idle)
        self.assertEqual(placements[1].origin_cell(), (18, 3))

    def test_hold_elapsed_ignored_when_not_pending(self):
        frame = _frame()
        state, placements = drag.hold_elapsed(Idle(), frame, V1)
        self.assertIsInstance(state, Idle)
        self.assertEqual(placements, frame.placements)

    def test_cancel_commits_like_release(self):
        self.assertIs(drag.cancel, drag.release)
