import unittest

from fretscape.beat_plan import PlanContext
from fretscape.clock import ManualScheduler
from fretscape.drums import DrumEngine
from fretscape.lattice import Brick, LatticeFrame, Placement
from fretscape.patterns import parse_strum
from fretscape.theory import parse_degrees
from fretscape.transport import PlaybackFrame, Transport
from fretscape.voices import DRUM_CHANNEL, TONE_CHANNEL, ToneSynth, VirtualVoiceSink


FRAME = LatticeFrame(placements=(Placement(Brick(), 10, 6),))


class _Rig:
    def __init__(self, degrees, mode="root5th", strum=None, bpm=100, placements=True):
        self.scheduler = ManualScheduler()
        self.sink = VirtualVoiceSink()
        self.synth = ToneSynth(self.sink, key="C")
        self.drums = DrumEngine(self.sink)
        frame = FRAME if placements else LatticeFrame()
        self.ctx = PlanContext(frame=frame, progression=tuple(parse_degrees(degrees)), mode=mode, strum=parse_strum(strum))
        self.transport = Transport(self.scheduler, lambda: self.ctx, self.synth, self.drums, bpm)

    def tone_pitches(self):
        return self.sink.pitches(TONE_CHANNEL)


class TestTransportDispatch(unittest.TestCase):
    def test_start_dispatches_beat_zero_immediately(self):
        rig = _Rig(["I", "IV", "V", "I"])
        self.assertTrue(rig.transport.start())
        self.assertTrue(rig.transport.is_playing)
        self.assertEqual(rig.tone_pitches(), [48])
        self.assertEqual(rig.transport.beat_index, 1)
        ch, pitch, vel, delay, length = rig.sink.voices[0]
        self.assertEqual(delay, 0.0)
        self.assertAlmostEqual(length, 0.6 * 0.9)

    def test_root5th_beats_follow_clock(self):
        rig = _Rig(["I", "IV", "V", "I"])
        rig.transport.start()
        rig.scheduler.advance(599)
        self.assertEqual(rig.tone_pitches(), [48])
        rig.scheduler.advance(1)
        self.assertEqual(rig.tone_pitches(), [48, 43])
        rig.scheduler.advance(600 * 3)
        # I root, I fifth, I root, I fifth, IV root
        self.assertEqual(rig.tone_pitches(), [48, 43, 48, 43, 53])

    def test_held_notes_ring_full_length(self):
        rig = _Rig(["I"], mode="root")
        rig.transport.start()
        self.assertAlmostEqual(rig.sink.voices[0][4], 1.2)

    def test_strum_delays_in_seconds(self):
        rig = _Rig(["I"], strum=["du", "-", "-", "-"])
        rig.transport.start()
        delays = [v[3] for v in rig.sink.voices if v[0] == TONE_CHANNEL]
        for got, want in zip(delays, [0.0, 0.03, 0.06, 0.3, 0.33, 0.36]):
            self.assertAlmostEqual(got, want)

    def test_slaps_go_to_drum_engine(self):
        rig = _Rig(["I"], strum=["s", "-", "-", "-"])
        rig.transport.start()
        self.assertEqual(rig.tone_pitches(), [])
        self.assertEqual(rig.sink.pitches(DRUM_CHANNEL), [39])

    def test_drum_beat_follows_transport(self):
        rig = _Rig(["I"])
        rig.drums.set_drumbeats({"key": {"k": "kick", "s": "snare"}, "patterns": [{"id": "p", "name": "P", "beats": ["k", "s", "k", "s"]}]})
        rig.transport.start()
        rig.scheduler.advance(600)
        self.assertEqual(rig.sink.pitches(DRUM_CHANNEL), [36, 38])


class TestTransportControl(unittest.TestCase):
    def test_start_refused_without_roots(self):
        rig = _Rig(["nope", "X"])
        self.assertFalse(rig.transport.start())
        self.assertFalse(rig.transport.is_playing)
        self.assertEqual(rig.sink.voices, [])
        self.assertEqual(rig.scheduler.pending(), 0)

    def test_start_refused_without_placements(self):
        rig = _Rig(["I"], placements=False)
        self.assertFalse(rig.transport.start())

    def test_stop_is_idempotent(self):
        rig = _Rig(["I", "V"])
        changes = []
        rig.transport.subscribe(changes.append)
        rig.transport.start()
        rig.transport.stop()
        rig.transport.stop()
        self.assertEqual(changes, [True, False])

    def test_stop_cancels_clock_and_animation(self):
        rig = _Rig(["I", "V"])
        rig.transport.start()
        rig.transport.stop()
        self.assertEqual(rig.scheduler.pending(), 0)
        self.assertEqual(rig.transport.beat_index, 0)
        heard = len(rig.sink.voices)
        rig.scheduler.advance(5000)
        self.assertEqual(len(rig.sink.voices), heard)
        self.assertIsNone(rig.transport.current_frame())

    def test_bpm_clamped(self):
        rig = _Rig(["I"])
        self.assertEqual(rig.transport.set_bpm(59), 60)
        self.assertEqual(rig.transport.set_bpm(201), 200)
        self.assertEqual(rig.transport.set_bpm("fast"), 200)

    def test_bpm_change_keeps_beat_index(self):
        rig = _Rig(["I", "IV"])
        rig.transport.start()
        rig.scheduler.advance(1200)
        self.assertEqual(rig.transport.beat_index, 3)
        rig.transport.set_bpm(120)
        self.assertEqual(rig.transport.beat_index, 3)
        self.assertTrue(rig.transport.is_playing)
        rig.scheduler.advance(499)
        self.assertEqual(rig.transport.beat_index, 3)
        rig.scheduler.advance(1)
        self.assertEqual(rig.transport.beat_index, 4)
        # Only one clock survives the restart
        rig.scheduler.advance(400)
        self.assertEqual(rig.transport.beat_index, 4)

    def test_listener_errors_do_not_break_playback(self):
        rig = _Rig(["I"])

        def boom(_playing):
            raise RuntimeError("listener failure")

        rig.transport.subscribe(boom)
        self.assertTrue(rig.transport.start())
        self.assertTrue(rig.transport.is_playing)


class TestTransportFrames(unittest.TestCase):
    def test_frames_interpolate_between_beats(self):
        rig = _Rig(["I", "IV"], mode="root5th")
        frames = []
        rig.transport.on_frame(frames.append)
        rig.transport.start()
        rig.scheduler.advance(300)
        self.assertTrue(frames)
        last = frames[-1]
        self.assertIsInstance(last, PlaybackFrame)
        self.assertEqual(last.beat_index, 0)
        self.assertGreater(last.progress, 0.45)
        self.assertLess(last.progress, 0.55)
        self.assertEqual(last.from_cells, ((14, 7),))
        self.assertEqual(last.to_cells, ((14, 6),))
        x, y = last.positions()[0]
        self.assertAlmostEqual(x, 14.0)
        self.assertAlmostEqual(y, 7.0 - last.progress)

    def test_frames_stop_after_stop(self):
        rig = _Rig(["I"])
        frames = []
        rig.transport.on_frame(frames.append)
        rig.transport.start()
        rig.scheduler.advance(100)
        rig.transport.stop()
        count = len(frames)
        rig.scheduler.advance(1000)
        self.assertEqual(len(frames), count)

    def test_extra_sources_follow_last_target(self):
        frame = PlaybackFrame(beat_index=0, progress=1.0, pulse=0.0, from_cells=((0, 0), (2, 2)), to_cells=((4, 0),))
        self.assertEqual(frame.positions(), [(4.0, 0.0), (4.0, 0.0)])
