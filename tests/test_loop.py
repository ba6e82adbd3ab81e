from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

import numpy as np

from kinrecon.sources.depth_source import FileReplaySource
from kinrecon.sources.errors import FrameDecodeFailed
from kinrecon.system.loop import PAUSE_HINT, ReconstructionLoop
from kinrecon.system.state import RunMode
from kinrecon.viz.window import TextWidget

from fakes import FakeClock, FakeDisplay, FakeEngine, FakeWindow, ListSource, write_depth_png, write_manifest


def _frames(n: int) -> list[np.ndarray]:
    out = []
    for i in range(n):
        f = np.full((48, 64), 1000 + i, dtype=np.uint16)
        f[:, 0] = 0
        out.append(f)
    return out


def _loop(n_frames=3, results=None, keys=None, idle=False, clock=None, engine=None, window=None):
    engine = engine if engine is not None else FakeEngine(results)
    window = window if window is not None else FakeWindow()
    display = FakeDisplay(keys)
    loop = ReconstructionLoop(
        ListSource(_frames(n_frames)),
        engine,
        window,
        display,
        {},
        idle=idle,
        clock=clock or FakeClock([0]),
    )
    return loop, engine, window, display


class ReconstructionLoopTests(unittest.TestCase):
    def test_runs_until_end_of_stream(self) -> None:
        loop, engine, window, display = _loop(3)
        result = loop.run()
        self.assertEqual(result.frames, 3)
        self.assertFalse(result.quit)
        self.assertEqual(engine.updates, 3)
        self.assertEqual(len(loop.state.trajectory), 3)
        self.assertEqual(len(display.shown), 3)
        self.assertIn("cube", window.widgets)
        self.assertIn(("spin_once", 1, True), window.calls)

    def test_frames_reach_engine_mirrored(self) -> None:
        seen = []
        engine = FakeEngine()
        original = engine.update

        def update(depth):
            seen.append(depth.copy())
            return original(depth)

        engine.update = update
        loop, *_ = _loop(1, engine=engine)
        loop.run()
        self.assertEqual(int(seen[0][0, -1]), 0)
        self.assertEqual(int(seen[0][0, 0]), 1000)

    def test_failed_update_resets_and_adds_no_trajectory_point(self) -> None:
        loop, engine, window, _ = _loop(3, results=[True, False, True])
        loop.run()
        self.assertEqual(len(loop.state.trajectory), 2)
        self.assertEqual(engine.resets, 1)

        updates = [i for i, c in enumerate(engine.calls) if c == "update"]
        resets = [i for i, c in enumerate(engine.calls) if c == "reset"]
        self.assertTrue(updates[1] < resets[0] < updates[2])
        # no cloud/pose query for the failed frame
        self.assertNotIn("get_pose", engine.calls[updates[1]:updates[2]])
        self.assertEqual([f["update"] for f in loop.telemetry.frames], ["ok", "failed", "ok"])
        # a rendered view is still presented for the failed frame
        self.assertIn("render", engine.calls[updates[1]:updates[2]])

    def test_trajectory_uses_pose_origin(self) -> None:
        loop, *_ = _loop(2)
        loop.run()
        np.testing.assert_allclose(loop.state.trajectory[0], [0.01, 0.0, 0.0])
        np.testing.assert_allclose(loop.state.trajectory[1], [0.02, 0.0, 0.0])

    def test_empty_cloud_skips_widgets_but_still_renders(self) -> None:
        loop, engine, window, display = _loop(1, engine=FakeEngine(cloud_size=0))
        loop.run()
        self.assertEqual(window.calls, [])
        self.assertEqual(len(loop.state.trajectory), 1)
        self.assertIn("render", engine.calls)
        self.assertEqual(len(display.shown), 1)

    def test_idle_never_updates_engine(self) -> None:
        loop, engine, _, display = _loop(3, keys=["p", "r", None], idle=True)
        result = loop.run()
        self.assertEqual(result.frames, 3)
        self.assertEqual(engine.calls, [])
        self.assertEqual(loop.state.mode, RunMode.IDLE)
        self.assertEqual(display.shown[0].shape, (48, 64, 3))

    def test_idle_without_engine(self) -> None:
        loop = ReconstructionLoop(ListSource(_frames(1)), None, FakeWindow(), FakeDisplay(), idle=True, clock=FakeClock([0]))
        self.assertEqual(loop.run().frames, 1)

    def test_engine_required_unless_idle(self) -> None:
        with self.assertRaises(ValueError):
            ReconstructionLoop(ListSource([]), None, FakeWindow(), FakeDisplay(), clock=FakeClock([0]))

    def test_quit_stops_before_next_acquisition(self) -> None:
        loop, engine, _, _ = _loop(3, keys=["q"])
        result = loop.run()
        self.assertTrue(result.quit)
        self.assertEqual(result.frames, 1)
        self.assertEqual(loop.source.reads, 1)

    def test_manual_reset_keeps_trajectory(self) -> None:
        loop, engine, _, _ = _loop(3, keys=[None, "r"])
        loop.run()
        self.assertEqual(engine.resets, 1)
        self.assertEqual(len(loop.state.trajectory), 3)
        self.assertEqual(loop.telemetry.events[0]["event"], "reset")

    def test_pause_and_resume_keeps_trajectory_and_appends_after(self) -> None:
        lengths = []
        window = FakeWindow()
        loop, engine, window, display = _loop(3, keys=[None, "p"], window=window)
        window.on_spin = lambda: lengths.append(len(loop.state.trajectory))

        self.assertTrue(loop.step())
        self.assertTrue(loop.step())
        self.assertEqual(loop.state.mode, RunMode.PAUSED)
        self.assertTrue(loop.step())

        self.assertEqual(lengths, [2])
        self.assertEqual(loop.state.mode, RunMode.RUNNING)
        self.assertEqual(len(loop.state.trajectory), 3)
        # no frame is dropped by the pause
        self.assertEqual(engine.updates, 3)

        mouse_calls = [c for c in window.calls if c[0] == "mouse"]
        self.assertEqual(mouse_calls, [("mouse", True), ("mouse", False)])
        self.assertNotIn("text", window.widgets)
        # the mouse handler re-rendered from the viewer pose
        self.assertTrue(any(p is not None for p in engine.render_poses))

    def test_pause_text_is_shown_during_session(self) -> None:
        seen = []
        window = FakeWindow()
        loop, *_ = _loop(2, keys=["p"], window=window)
        window.on_spin = lambda: seen.append(window.widgets.get("text"))
        loop.run()
        self.assertEqual(len(seen), 1)
        self.assertIsInstance(seen[0][0], TextWidget)
        self.assertEqual(seen[0][0].text, PAUSE_HINT)

    def test_pause_with_empty_cloud_resumes_without_modal_session(self) -> None:
        loop, engine, window, _ = _loop(2, keys=["p"], engine=FakeEngine(cloud_size=0))
        loop.run()
        self.assertNotIn(("spin",), window.calls)
        self.assertEqual(loop.state.mode, RunMode.RUNNING)
        self.assertEqual(engine.updates, 2)

    def test_fps_from_tick_delta(self) -> None:
        loop, *_ = _loop(2, clock=FakeClock([0, 100, 300]))
        loop.run()
        self.assertEqual([f["fps"] for f in loop.telemetry.frames], [10.0, 5.0])

    def test_fps_after_pause_ignores_time_spent_paused(self) -> None:
        # init, frame 1, frame 2, resume stamp, frame 3
        clock = FakeClock([0, 100, 200, 5000, 5100])
        loop, *_ = _loop(3, keys=[None, "p"], clock=clock)
        loop.run()
        self.assertEqual([f["fps"] for f in loop.telemetry.frames], [10.0, 10.0, 10.0])

    def test_fps_never_negative_on_stalled_clock(self) -> None:
        loop, *_ = _loop(2, clock=FakeClock([50]))
        loop.run()
        self.assertTrue(all(f["fps"] == 0.0 for f in loop.telemetry.frames))


class EndToEndTests(unittest.TestCase):
    def test_corrupt_second_frame_is_fatal(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            write_depth_png(root / "001.png", 1000)
            (root / "002.png").write_bytes(b"\x89PNG garbage")
            write_depth_png(root / "003.png", 1200)
            source = FileReplaySource(str(write_manifest(root, ["001.png", "002.png", "003.png"])))

            engine = FakeEngine()
            loop = ReconstructionLoop(source, engine, FakeWindow(), FakeDisplay(), {}, clock=FakeClock([0]))
            with self.assertRaises(FrameDecodeFailed):
                loop.run()
            self.assertEqual(engine.updates, 1)
            self.assertEqual(len(loop.state.trajectory), 1)
            self.assertEqual(source.cursor, 2)

    def test_idle_replay_never_calls_update(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            for i in range(4):
                write_depth_png(root / f"{i}.png", 500 * (i + 1))
            source = FileReplaySource(str(write_manifest(root, [f"{i}.png" for i in range(4)])))

            engine = FakeEngine()
            loop = ReconstructionLoop(source, engine, FakeWindow(), FakeDisplay(), {}, idle=True, clock=FakeClock([0]))
            self.assertEqual(loop.run().frames, 4)
            self.assertEqual(engine.updates, 0)


if __name__ == "__main__":
    unittest.main()
