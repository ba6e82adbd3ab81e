from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

from .state import LoopState, RunMode
from .telemetry import Telemetry
from ..geom.se3 import transform_point
from ..viz.preview import draw_status, measure_fps, mirror, pseudo_color, tone_map
from ..viz.window import CameraMarkerWidget, CloudWidget, CubeWidget, PolyLineWidget, TextWidget

PAUSE_HINT = "Move camera in this window. Close the window or press Q to resume"


@dataclass
class LoopResult:
    frames: int
    quit: bool
    trajectory_len: int


class ReconstructionLoop:
    """
    Acquisition -> fusion -> presentation, one depth frame per step().

    Collaborators:
      source:    next_frame() -> uint16 image, or None at end of stream
      engine:    FusionEngine (may be None when idle)
      window:    3D scene surface (show_widget/remove_widget/spin_once/spin/...)
      display:   2D image window with show(image) and poll_key(timeout_ms)
      clock:     anything with getTickCount()/getTickFrequency(), cv2 by default
    """

    def __init__(
        self,
        source,
        engine,
        window,
        display,
        cfg: dict | None = None,
        telemetry: Telemetry | None = None,
        *,
        idle: bool = False,
        clock=cv2,
    ):
        if engine is None and not idle:
            raise ValueError("ReconstructionLoop needs a fusion engine unless running idle.")
        cfg = cfg or {}
        self.source = source
        self.engine = engine
        self.window = window
        self.display = display
        self.telemetry = telemetry if telemetry is not None else Telemetry()
        self.clock = clock
        self.quit = False

        preview = cfg.get("preview", {})
        self.max_depth = float(preview.get("max_depth", 3000.0))
        self.colormap = str(preview.get("colormap", "parula"))
        self.key_timeout_ms = int(preview.get("key_timeout_ms", 1))

        self._camera_marker = None
        if engine is not None:
            viz = cfg.get("viz", {})
            self._camera_marker = CameraMarkerWidget(
                K=engine.get_params().intrinsics,
                scale=float(viz.get("camera_marker_scale", 0.25)),
            )

        self.state = LoopState(
            mode=RunMode.IDLE if idle else RunMode.RUNNING,
            prev_tick=self.clock.getTickCount(),
        )

    # --- per-iteration
    def step(self) -> bool:
        """Run one iteration. Returns False once the stream ended or the user quit."""
        st = self.state

        if st.mode is RunMode.PAUSED:
            self._pause_session()
            st.mode = RunMode.RUNNING
            # time spent in the modal session is not frame time
            st.prev_tick = self.clock.getTickCount()

        frame = self.source.next_frame()
        if frame is None:
            return False

        frame = mirror(frame)
        preview = tone_map(frame, self.max_depth)
        rec = {"mode": st.mode.value}

        if st.idle:
            st.rendered = pseudo_color(preview, self.colormap)
            rec["update"] = "skipped"
        else:
            if not self.engine.update(frame):
                self.engine.reset()
                print(f"[WARN] reset: fusion update failed at frame {st.frame_idx}")
                self.telemetry.log_event(st.frame_idx, "reset_on_failure")
                rec["update"] = "failed"
            else:
                self._commit_update()
                rec["update"] = "ok"
            st.rendered = self.engine.render()

        cur_tick = self.clock.getTickCount()
        st.fps = measure_fps(self.clock.getTickFrequency(), st.prev_tick, cur_tick)
        st.prev_tick = cur_tick

        image = draw_status(np.ascontiguousarray(st.rendered).copy(), st.fps)
        self.display.show(image)

        rec["fps"] = st.fps
        rec["traj_len"] = len(st.trajectory)
        self.telemetry.log_frame(st.frame_idx, rec)
        st.frame_idx += 1

        return self._handle_key(self.display.poll_key(self.key_timeout_ms))

    def run(self) -> LoopResult:
        while self.step():
            pass
        return LoopResult(
            frames=self.state.frame_idx,
            quit=self.quit,
            trajectory_len=len(self.state.trajectory),
        )

    # --- fusion success path
    def _commit_update(self) -> None:
        st = self.state
        points, normals = self.engine.get_cloud()
        pose = self.engine.get_pose()
        st.trajectory.append(transform_point(pose, np.zeros(3)))

        if len(points) == 0 or len(normals) == 0:
            return

        self.window.show_widget("cloud", CloudWidget(points))
        self.window.show_widget("camera_trace", PolyLineWidget(np.array(st.trajectory)))
        self.window.show_widget("camera", self._camera_marker, pose)
        self._show_volume()
        self.window.spin_once(1, True)

    def _show_volume(self) -> None:
        params = self.engine.get_params()
        self.window.show_widget("cube", CubeWidget(np.zeros(3), params.volume_size), params.volume_pose)

    # --- pause
    def _pause_session(self) -> None:
        points, normals = self.engine.get_cloud()
        if len(points) == 0 or len(normals) == 0:
            return

        self.telemetry.log_event(self.state.frame_idx, "pause")
        self.window.show_widget("cloud", CloudWidget(points))
        self._show_volume()
        self.window.register_mouse_callback(self._on_pause_mouse)
        self.window.show_widget("text", TextWidget(PAUSE_HINT))
        self.window.spin()
        self.window.remove_widget("text")
        self.window.remove_widget("cloud")
        self.window.register_mouse_callback(None)
        self.telemetry.log_event(self.state.frame_idx, "resume")

    def _on_pause_mouse(self, _event) -> None:
        rendered = self.engine.render(self.window.get_viewer_pose())
        self.display.show(rendered)
        self.display.poll_key(1)

    # --- keyboard
    def _handle_key(self, key: str | None) -> bool:
        if key is None:
            return True
        key = key.lower()
        st = self.state
        if key == "q":
            self.quit = True
            return False
        if key == "r" and not st.idle:
            # trajectory is kept across resets
            self.engine.reset()
            print(f"[INFO] manual reset at frame {st.frame_idx}")
            self.telemetry.log_event(st.frame_idx, "reset")
        elif key == "p" and not st.idle:
            st.mode = RunMode.PAUSED
        return True
