import unittest

from fretscape.patterns import (
    BassStep,
    RiffNote,
    bass_run_steps,
    parse_riff,
    parse_riff_line,
    parse_strum,
    strum_timeline,
)


class TestBassRuns(unittest.TestCase):
    def test_holds_extend_previous_note(self):
        steps = bass_run_steps("root")
        self.assertEqual(steps, (BassStep("root", 2), BassStep(None, 1), BassStep("root", 2), BassStep(None, 1)))

    def test_modes(self):
        self.assertEqual([s.role for s in bass_run_steps("root5th")], ["root", "fifth", "root", "fifth"])
        self.assertEqual([s.role for s in bass_run_steps("arpeggio135")], ["root", "third", "fifth", "third"])
        self.assertEqual([s.role for s in bass_run_steps("eshape513")], ["fifth", "root", "third", "root"])
        self.assertEqual([s.role for s in bass_run_steps("cshape1351")], ["root", "third", "fifth", "root"])

    def test_unknown_mode_falls_back_to_root(self):
        self.assertEqual(bass_run_steps("polka"), bass_run_steps("root"))


class TestRiffs(unittest.TestCase):
    def test_parse_line(self):
        self.assertEqual(parse_riff_line("(1,0-2-)"), [RiffNote(0, 0, 1), RiffNote(2, 2, 1)])
        self.assertEqual(parse_riff_line(" ( -1 , 3--9 ) "), [RiffNote(0, 3, -1), RiffNote(3, 9, -1)])

    def test_malformed_lines_contribute_nothing(self):
        for bad in ["(1,02)", "1,0123", "(a,0123)", "(1,01x3)", None, 7]:
            self.assertEqual(parse_riff_line(bad), [], bad)

    def test_parse_riff_sorts_by_beat(self):
        notes = parse_riff({"id": "r", "name": "R", "notes": ["(0,--1-)", "bad", "(-1,3---)"]})
        self.assertEqual(notes, (RiffNote(0, 3, -1), RiffNote(2, 1, 0)))
        self.assertEqual(parse_riff(None), ())
        self.assertEqual(parse_riff("(0,0---)"), ())


class TestStrums(unittest.TestCase):
    def test_parse_strum(self):
        self.assertEqual(parse_strum(["d", "-", "du", "u"]), ("d", "-", "du", "u"))
        self.assertEqual(parse_strum({"beats": ["D", "x", "du", " u "]}), ("d", "-", "du", "u"))
        self.assertIsNone(parse_strum(["d", "u"]))
        self.assertIsNone(parse_strum(None))

    def test_down_up_within_one_beat(self):
        strikes = [s for s in strum_timeline(("d", "-", "du", "u")) if 2 <= s.time < 3]
        self.assertEqual([s.role for s in strikes], ["root", "third", "fifth", "fifth", "third", "root"])
        times = [s.time for s in strikes]
        for got, want in zip(times, [2.0, 2.05, 2.1, 2.5, 2.55, 2.6]):
            self.assertAlmostEqual(got, want)
        # Down-stroke strings ring until the up-stroke starts
        self.assertAlmostEqual(strikes[0].duration, 0.5)
        self.assertAlmostEqual(strikes[2].duration, 0.4)

    def test_slap_and_rest(self):
        strikes = strum_timeline(("s", "-", "-", "-"))
        self.assertEqual(len(strikes), 1)
        self.assertIsNone(strikes[0].role)
        self.assertAlmostEqual(strikes[0].duration, 4.0)

    def test_stroke_gap_compressed_before_next_action(self):
        strikes = strum_timeline(("dudu", "-", "-", "-"), stroke_gap=0.2)
        onsets = sorted(s.time for s in strikes)
        action_starts = [0.0, 0.25, 0.5, 0.75, 4.0]
        for start, nxt in zip(action_starts, action_starts[1:]):
            group = [t for t in onsets if start <= t < nxt]
            self.assertEqual(len(group), 3)
            self.assertLess(max(group), nxt)
