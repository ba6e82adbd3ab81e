from __future__ import annotations

import atexit
from typing import Any

from .errors import DeviceInitFailed

_SUBSYSTEM: "DeviceSubsystem | None" = None


class DeviceSubsystem:
    """
    Process-wide depth camera SDK lifetime.

    The SDK context is created by the first acquire() and torn down once,
    either at interpreter exit or when a failed source construction leaves
    no users behind. Once torn down it cannot be initialized again.
    Pipelines registered here are stopped on shutdown.
    """

    def __init__(self, rs_module: Any = None):
        self._rs = rs_module
        self.ctx = None
        self.users = 0
        self.initialized = False
        self.shutdown_count = 0
        self._pipelines: list = []
        self._atexit_registered = False
        self._shut_down = False

    @classmethod
    def instance(cls) -> "DeviceSubsystem":
        global _SUBSYSTEM
        if _SUBSYSTEM is None:
            _SUBSYSTEM = cls()
        return _SUBSYSTEM

    @property
    def rs(self):
        if self._rs is None:
            try:
                import pyrealsense2 as rs
            except ImportError as ex:
                raise DeviceInitFailed("pyrealsense2 is required for --camera. Install with: pip install pyrealsense2") from ex
            self._rs = rs
        return self._rs

    def acquire(self):
        if self._shut_down:
            raise DeviceInitFailed("Camera SDK was already shut down in this process")
        if not self.initialized:
            rs = self.rs
            try:
                self.ctx = rs.context()
            except RuntimeError as ex:
                raise DeviceInitFailed(f"Camera SDK initialize fail: {ex}") from ex
            self.initialized = True
            print("[CAM] Camera SDK initialized")
            if not self._atexit_registered:
                atexit.register(self.shutdown)
                self._atexit_registered = True
        self.users += 1
        return self.ctx

    def release(self) -> None:
        self.users = max(0, self.users - 1)
        if self.users == 0:
            self.shutdown()

    def register_pipeline(self, pipeline) -> None:
        self._pipelines.append(pipeline)

    def shutdown(self) -> None:
        if not self.initialized:
            return
        for pipeline in self._pipelines:
            try:
                pipeline.stop()
            except RuntimeError as ex:
                # stop() on a pipeline that never started
                print(f"[WARN] pipeline stop: {ex}")
        self._pipelines = []
        self.ctx = None
        self.initialized = False
        self.users = 0
        self._shut_down = True
        self.shutdown_count += 1
        print("[CAM] Camera SDK shut down")
