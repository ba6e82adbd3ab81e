from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np
import matplotlib.pyplot as plt

from ..geom.se3 import look_at

Color = Tuple[float, float, float]

DARK: Color = (0.15, 0.15, 0.15)
GREEN: Color = (0.0, 0.8, 0.0)
RED: Color = (1.0, 0.0, 0.0)
GRAY: Color = (0.6, 0.6, 0.6)


@dataclass
class CloudWidget:
    points: np.ndarray  # (N,3)
    color: Color = DARK


@dataclass
class PolyLineWidget:
    points: np.ndarray  # (N,3)
    color: Color = GREEN


@dataclass
class CameraMarkerWidget:
    K: np.ndarray  # 3x3
    scale: float = 0.25
    color: Color = RED
    image_size: Tuple[int, int] = (640, 480)


@dataclass
class CubeWidget:
    min_pt: np.ndarray
    max_pt: np.ndarray
    color: Color = GRAY


@dataclass
class TextWidget:
    text: str
    color: Color = (0.0, 0.0, 0.0)


Widget = Union[CloudWidget, PolyLineWidget, CameraMarkerWidget, CubeWidget, TextWidget]
MouseCallback = Callable[[object], None]


@dataclass
class _Placed:
    widget: Widget
    pose: np.ndarray = field(default_factory=lambda: np.eye(4))


def _apply(T: np.ndarray, pts: np.ndarray) -> np.ndarray:
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 3)
    return pts @ T[:3, :3].T + T[:3, 3]


def _cube_edges(lo: np.ndarray, hi: np.ndarray) -> list[np.ndarray]:
    corners = np.array([[x, y, z] for x in (lo[0], hi[0]) for y in (lo[1], hi[1]) for z in (lo[2], hi[2])])
    edges = []
    for i in range(8):
        for j in range(i + 1, 8):
            # corners differing in exactly one coordinate
            if np.count_nonzero(corners[i] != corners[j]) == 1:
                edges.append(corners[[i, j]])
    return edges


def _frustum_lines(w: CameraMarkerWidget) -> list[np.ndarray]:
    iw, ih = w.image_size
    Kinv = np.linalg.inv(w.K)
    corners = [Kinv @ np.array([u, v, 1.0]) * w.scale for u, v in ((0, 0), (iw, 0), (iw, ih), (0, ih))]
    origin = np.zeros(3)
    lines = [np.stack([origin, c]) for c in corners]
    lines += [np.stack([corners[i], corners[(i + 1) % 4]]) for i in range(4)]
    return lines


class MplVizWindow:
    """
    3D scene window backed by matplotlib.

    Widgets are kept by name and redrawn on spin_once()/spin(). spin() blocks
    until the figure is closed; the next draw opens a fresh figure.
    """

    def __init__(self, title: str = "Cloud", max_points: int = 20000):
        self.title = title
        self.max_points = int(max_points)
        self.widgets: Dict[str, _Placed] = {}
        self.fig = None
        self.ax = None
        self._mouse_cb: Optional[MouseCallback] = None
        self._cids: list[int] = []

    # --- figure lifetime
    def _ensure_figure(self) -> None:
        if self.fig is not None and plt.fignum_exists(self.fig.number):
            return
        plt.ion()
        self.fig = plt.figure(self.title, figsize=(8, 6))
        self.ax = self.fig.add_subplot(111, projection="3d")
        self.ax.view_init(elev=-90, azim=-90)
        self._cids = []
        if self._mouse_cb is not None:
            self._connect()

    def _connect(self) -> None:
        for ev in ("motion_notify_event", "scroll_event"):
            self._cids.append(self.fig.canvas.mpl_connect(ev, self._mouse_cb))

    def _disconnect(self) -> None:
        if self.fig is not None:
            for cid in self._cids:
                self.fig.canvas.mpl_disconnect(cid)
        self._cids = []

    # --- widgets
    def show_widget(self, name: str, widget: Widget, pose: np.ndarray | None = None) -> None:
        self.widgets[name] = _Placed(widget, np.eye(4) if pose is None else np.asarray(pose, dtype=np.float64))

    def remove_widget(self, name: str) -> None:
        self.widgets.pop(name, None)

    def register_mouse_callback(self, handler: Optional[MouseCallback]) -> None:
        self._disconnect()
        self._mouse_cb = handler
        if handler is not None and self.fig is not None and plt.fignum_exists(self.fig.number):
            self._connect()

    def get_viewer_pose(self) -> np.ndarray:
        self._ensure_figure()
        elev = np.deg2rad(self.ax.elev)
        azim = np.deg2rad(self.ax.azim)
        lo = np.array([self.ax.get_xlim()[0], self.ax.get_ylim()[0], self.ax.get_zlim()[0]])
        hi = np.array([self.ax.get_xlim()[1], self.ax.get_ylim()[1], self.ax.get_zlim()[1]])
        center = (lo + hi) / 2.0
        dist = float(np.linalg.norm(hi - lo)) or 1.0
        direction = np.array([np.cos(elev) * np.cos(azim), np.cos(elev) * np.sin(azim), np.sin(elev)])
        return look_at(center + dist * direction, center)

    # --- drawing
    def _draw(self) -> None:
        self._ensure_figure()
        ax = self.ax
        elev, azim = ax.elev, ax.azim
        ax.clear()
        ax.set_xlabel("X (m)")
        ax.set_ylabel("Y (m)")
        ax.set_zlabel("Z (m)")
        ax.view_init(elev=elev, azim=azim)

        texts = []
        for placed in self.widgets.values():
            w, T = placed.widget, placed.pose
            if isinstance(w, CloudWidget):
                pts = _apply(T, w.points)
                if len(pts) > self.max_points:
                    pts = pts[:: int(np.ceil(len(pts) / self.max_points))]
                if len(pts):
                    ax.scatter(pts[:, 0], pts[:, 1], pts[:, 2], s=0.5, c=[w.color], depthshade=False)
            elif isinstance(w, PolyLineWidget):
                pts = _apply(T, w.points)
                if len(pts):
                    ax.plot(pts[:, 0], pts[:, 1], pts[:, 2], "-", color=w.color, linewidth=1.5)
            elif isinstance(w, CameraMarkerWidget):
                for seg in _frustum_lines(w):
                    seg = _apply(T, seg)
                    ax.plot(seg[:, 0], seg[:, 1], seg[:, 2], "-", color=w.color)
            elif isinstance(w, CubeWidget):
                for seg in _cube_edges(np.asarray(w.min_pt, float), np.asarray(w.max_pt, float)):
                    seg = _apply(T, seg)
                    ax.plot(seg[:, 0], seg[:, 1], seg[:, 2], "-", color=w.color, linewidth=0.8)
            elif isinstance(w, TextWidget):
                texts.append(w)

        ax.set_title("\n".join(t.text for t in texts) or self.title)

    def spin_once(self, duration_ms: int = 1, force_redraw: bool = False) -> None:
        if force_redraw or self.fig is None:
            self._draw()
        plt.pause(max(duration_ms, 1) / 1000.0)

    def spin(self) -> None:
        self._draw()
        plt.show(block=True)
        self._disconnect()
        self.fig = None
        self.ax = None
