"""Depth frame sources.

Supported acquisition modes:
- File replay of a recorded sequence listed in a TUM-style depth.txt.
- Live capture from the first connected depth camera (pyrealsense2).

Both expose ``next_frame()``, which returns a uint16 depth image or ``None``
once the stream has ended. Live capture never ends on its own.
"""

from __future__ import annotations

import enum
from typing import Iterator, Optional, Protocol

import cv2
import numpy as np

from ..dataset.manifest import DepthManifestEntry, read_depth_manifest
from .device import DeviceSubsystem
from .errors import (
    DeviceOpenFailed,
    FrameDecodeFailed,
    FrameInvalid,
    StreamCreateFailed,
    StreamStartFailed,
    StreamWaitFailed,
)


class AcquisitionMode(enum.Enum):
    FILE_REPLAY = "file"
    LIVE_CAMERA = "camera"


class DepthSource(Protocol):
    mode: AcquisitionMode

    def next_frame(self) -> Optional[np.ndarray]: ...


class _IterMixin:
    def __iter__(self) -> Iterator[np.ndarray]:
        while True:
            frame = self.next_frame()
            if frame is None:
                return
            yield frame


class FileReplaySource(_IterMixin):
    mode = AcquisitionMode.FILE_REPLAY

    def __init__(self, manifest_path: str | None):
        self.manifest_path = manifest_path or ""
        self.entries: list[DepthManifestEntry] = read_depth_manifest(self.manifest_path) if self.manifest_path else []
        self.cursor = 0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> list[str]:
        return [e.path for e in self.entries]

    def next_frame(self) -> Optional[np.ndarray]:
        if self.cursor >= len(self.entries):
            return None
        path = self.entries[self.cursor].path
        self.cursor += 1
        img = cv2.imread(path, cv2.IMREAD_ANYDEPTH)
        if img is None or img.size == 0:
            raise FrameDecodeFailed(f"Failed to decode depth image: {path}")
        return img


class LiveCameraSource(_IterMixin):
    mode = AcquisitionMode.LIVE_CAMERA

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        *,
        subsystem: DeviceSubsystem | None = None,
    ):
        self.width = int(width)
        self.height = int(height)
        self.fps = int(fps)
        self.subsystem = subsystem if subsystem is not None else DeviceSubsystem.instance()
        self.pipeline = None
        self.serial: str | None = None

        ctx = self.subsystem.acquire()
        try:
            self._open(ctx)
        except Exception:
            self.subsystem.release()
            raise

    def _open(self, ctx) -> None:
        rs = self.subsystem.rs

        devices = ctx.query_devices()
        if len(devices) == 0:
            raise DeviceOpenFailed("Fail to open camera: no depth device connected")
        try:
            self.serial = devices[0].get_info(rs.camera_info.serial_number)
        except RuntimeError as ex:
            raise DeviceOpenFailed(f"Fail to open camera: {ex}") from ex
        print(f"[CAM] Camera opened: {self.serial}")

        try:
            pipeline = rs.pipeline(ctx)
            config = rs.config()
            config.enable_device(self.serial)
            config.enable_stream(rs.stream.depth, self.width, self.height, rs.format.z16, self.fps)
            ok = config.can_resolve(pipeline)
        except RuntimeError as ex:
            raise StreamCreateFailed(f"Fail to create depth stream: {ex}") from ex
        if not ok:
            raise StreamCreateFailed(
                f"Fail to create depth stream: {self.width}x{self.height}@{self.fps} z16 not supported"
            )
        print("[CAM] Stream created")

        try:
            pipeline.start(config)
        except RuntimeError as ex:
            raise StreamStartFailed(f"Can not start depth stream: {ex}") from ex
        self.pipeline = pipeline
        self.subsystem.register_pipeline(pipeline)
        print("[CAM] Stream start")

    def next_frame(self) -> np.ndarray:
        try:
            frames = self.pipeline.wait_for_frames()
        except RuntimeError as ex:
            raise StreamWaitFailed(f"No stream from camera: {ex}") from ex

        depth = frames.get_depth_frame()
        if not depth:
            raise FrameInvalid("Frame invalid")
        print(f"[CAM] Frame read, {depth.get_timestamp():.0f}")
        # the SDK recycles the buffer on the next wait
        return np.asanyarray(depth.get_data(), dtype=np.uint16).copy()


def open_depth_source(camera: bool, depth: str | None, cfg: dict) -> DepthSource:
    if camera:
        cam = cfg.get("camera", {})
        return LiveCameraSource(
            width=int(cam.get("width", 640)),
            height=int(cam.get("height", 480)),
            fps=int(cam.get("fps", 30)),
        )
    return FileReplaySource(depth)
