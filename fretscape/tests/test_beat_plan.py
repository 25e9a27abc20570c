import unittest

from fretscape.beat_plan import PlanContext, build_beat_plan
from fretscape.lattice import Brick, LatticeFrame, Placement
from fretscape.patterns import parse_riff, parse_strum
from fretscape.shapes import VoicingStrategy
from fretscape.theory import parse_degrees


FRAME = LatticeFrame(placements=(Placement(Brick(), 10, 6),))


def _ctx(degrees, **kw):
    return PlanContext(frame=FRAME, progression=tuple(parse_degrees(degrees)), **kw)


class TestBassRunPlans(unittest.TestCase):
    def test_root5th_scenario(self):
        ctx = _ctx(["I", "IV", "V", "I"], mode="root5th")
        cells = {i: build_beat_plan(ctx, i).note_cells for i in (0, 1, 4, 8, 12, 16)}
        self.assertEqual(cells[0], ((14, 7),))
        self.assertEqual(cells[1], ((14, 6),))
        self.assertEqual(cells[4], ((14, 8),))
        self.assertEqual(cells[8], ((12, 8),))
        self.assertEqual(cells[12], ((14, 7),))
        # The progression wraps
        self.assertEqual(cells[16], ((14, 7),))

    def test_plan_indices(self):
        plan = build_beat_plan(_ctx(["I", "IV"], mode="root5th"), 6)
        self.assertEqual((plan.chord_index, plan.beat_in_chord), (1, 2))
        ev = plan.note_events[0]
        self.assertEqual((ev.delay, ev.duration, ev.sustain_hold, ev.kind), (0.0, 1.0, False, "note"))

    def test_hold_extends_note_and_anchors_ahead(self):
        ctx = _ctx(["I", "V"], mode="root")
        first = build_beat_plan(ctx, 0)
        self.assertEqual(first.note_events[0].duration, 2.0)
        self.assertTrue(first.note_events[0].sustain_hold)
        held = build_beat_plan(ctx, 3)
        self.assertEqual(held.note_events, ())
        # Next beat starts the V chord
        self.assertEqual(held.anchor_cell, (12, 8))

    def test_no_path_yields_empty_plan(self):
        ctx = PlanContext(frame=LatticeFrame(), progression=tuple(parse_degrees(["I"])))
        plan = build_beat_plan(ctx, 0)
        self.assertIsNone(plan.shape)
        self.assertEqual(plan.note_events, ())
        self.assertFalse(ctx.has_path())


class TestStrumPlans(unittest.TestCase):
    def test_strum_forces_full_triad_voicing(self):
        ctx = _ctx(["I"], mode="root5th", strum=parse_strum(["d", "-", "du", "u"]))
        self.assertEqual(ctx.strategy, VoicingStrategy.CSHAPE_1351)

    def test_down_up_beat(self):
        ctx = _ctx(["I"], strum=parse_strum(["d", "-", "du", "u"]))
        plan = build_beat_plan(ctx, 2)
        root, third, fifth = (14, 7), (15.0, 8.0), (17.0, 9.0)
        self.assertEqual([e.cell for e in plan.note_events], [root, third, fifth, fifth, third, root])
        delays = [e.delay for e in plan.note_events]
        for got, want in zip(delays, [0.0, 0.05, 0.1, 0.5, 0.55, 0.6]):
            self.assertAlmostEqual(got, want)
        self.assertEqual(plan.note_cells, (root, third, fifth))
        self.assertEqual(plan.anchor_cell, root)

    def test_rest_beat_anchors_to_next_root(self):
        ctx = _ctx(["I"], strum=parse_strum(["d", "-", "du", "u"]))
        plan = build_beat_plan(ctx, 1)
        self.assertEqual(plan.note_events, ())
        self.assertEqual(plan.anchor_cell, (14, 7))

    def test_slap_only_pattern(self):
        ctx = _ctx(["I", "IV"], strum=parse_strum(["s", "-", "-", "-"]))
        plan = build_beat_plan(ctx, 0)
        self.assertEqual(len(plan.note_events), 1)
        self.assertEqual(plan.note_events[0].kind, "slap")
        self.assertEqual(plan.note_cells, ())
        # No pitched note: the anchor is the next beat's root
        self.assertEqual(plan.anchor_cell, (14, 7))
        self.assertEqual(build_beat_plan(ctx, 3).anchor_cell, build_beat_plan(ctx, 4).shape.root)


class TestRiffPlans(unittest.TestCase):
    def test_riff_offsets_from_root(self):
        ctx = _ctx(["I"], riff=parse_riff(["(0,0-2-)"]))
        self.assertEqual(build_beat_plan(ctx, 0).note_cells, ((14, 7),))
        self.assertEqual(build_beat_plan(ctx, 2).note_cells, ((12.0, 7.0),))
        rest = build_beat_plan(ctx, 1)
        self.assertEqual(rest.note_cells, ())
        self.assertEqual(rest.anchor_cell, (14, 7))

    def test_riff_takes_precedence_over_strum(self):
        ctx = _ctx(["I"], riff=parse_riff(["(0,0---)"]), strum=parse_strum(["d", "d", "d", "d"]))
        first = build_beat_plan(ctx, 0)
        self.assertEqual(len(first.note_events), 1)
        self.assertEqual(first.note_cells, ((14, 7),))


class TestSourceFallthrough(unittest.TestCase):
    def test_riff_rest_falls_to_strum(self):
        ctx = _ctx(["I"], riff=parse_riff(["(0,0---)"]), strum=parse_strum(["d", "d", "d", "d"]))
        plan = build_beat_plan(ctx, 1)
        self.assertEqual([e.cell for e in plan.note_events], [(14, 7), (15.0, 8.0), (17.0, 9.0)])

    def test_riff_rest_falls_to_bass_run(self):
        ctx = _ctx(["I"], mode="root5th", riff=parse_riff(["(0,0---)"]))
        plan = build_beat_plan(ctx, 1)
        self.assertEqual(plan.note_cells, ((14, 6),))
        self.assertEqual(plan.anchor_cell, (14, 6))

    def test_strum_rest_falls_to_bass_run(self):
        ctx = _ctx(["I"], mode="root5th", strum=parse_strum(["d", "-", "d", "d"]))
        plan = build_beat_plan(ctx, 1)
        # Strumming keeps the full-triad voicing, so the fifth is the C-shape one
        self.assertEqual(plan.note_cells, ((17.0, 9.0),))
        self.assertFalse(plan.note_events[0].sustain_hold)

    def test_empty_everywhere_stays_silent(self):
        ctx = _ctx(["I", "V"], mode="root", riff=parse_riff(["(0,0---)"]))
        plan = build_beat_plan(ctx, 3)
        self.assertEqual(plan.note_events, ())
        self.assertEqual(plan.anchor_cell, (12, 8))
