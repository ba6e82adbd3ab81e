from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Protocol, Tuple

import cv2
import numpy as np

from ..geom.se3 import translation


class EngineInitFailed(RuntimeError):
    pass


@dataclass
class EngineParams:
    intrinsics: np.ndarray  # 3x3
    volume_dims: Tuple[int, int, int] = (1024, 1024, 1024)
    voxel_size: float = 3.0 / 1024
    volume_pose: np.ndarray = field(default_factory=lambda: np.eye(4))
    depth_factor: float | None = None
    coarse: bool = False

    @property
    def volume_size(self) -> np.ndarray:
        return self.voxel_size * np.asarray(self.volume_dims, dtype=np.float64)


class FusionEngine(Protocol):
    def update(self, depth: np.ndarray) -> bool: ...

    def reset(self) -> None: ...

    def get_cloud(self) -> Tuple[np.ndarray, np.ndarray]: ...

    def get_pose(self) -> np.ndarray: ...

    def render(self, view_pose: np.ndarray | None = None) -> np.ndarray: ...

    def get_params(self) -> EngineParams: ...


def build_params(cfg: dict, coarse: bool = False) -> EngineParams:
    cam = cfg.get("camera", {})
    fx = float(cam.get("fx", 597.0702))
    fy = float(cam.get("fy", 595.1533))
    cx = float(cam.get("cx", 317.4329))
    cy = float(cam.get("cy", 240.6083))
    K = np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)

    vol = cfg.get("volume", {})
    dims = vol.get("dims", 1024)
    if isinstance(dims, int):
        dims = (dims, dims, dims)
    dims = tuple(int(d) for d in dims)
    size_m = float(vol.get("size_m", 3.0))

    depth_factor = cfg.get("engine", {}).get("depth_factor")
    return EngineParams(
        intrinsics=K,
        volume_dims=dims,
        voxel_size=size_m / dims[0],
        # volume spans x,y in [-size/2, size/2] in front of the first camera pose
        volume_pose=translation(-size_m / 2.0, -size_m / 2.0, 0.0),
        depth_factor=None if depth_factor is None else float(depth_factor),
        coarse=bool(coarse),
    )


def _as_pose(pose) -> np.ndarray:
    m = getattr(pose, "matrix", pose)
    return np.asarray(m, dtype=np.float64).reshape(4, 4)


class KinFuEngine:
    """KinectFusion from opencv-contrib (cv2.kinfu)."""

    def __init__(self, params: EngineParams):
        if not hasattr(cv2, "kinfu_Params"):
            raise EngineInitFailed("cv2.kinfu is missing. Install with: pip install opencv-contrib-python")
        params = replace(params)
        self.params = params

        kp = cv2.kinfu_Params.coarseParams() if params.coarse else cv2.kinfu_Params.defaultParams()
        kp.intr = params.intrinsics.astype(np.float32)
        kp.volumeDims = np.array(params.volume_dims, dtype=np.int32)
        kp.voxelSize = float(params.voxel_size)
        kp.setInitialVolumePose(params.volume_pose.astype(np.float32))
        if params.depth_factor is not None:
            kp.depthFactor = float(params.depth_factor)
        else:
            params.depth_factor = float(kp.depthFactor)

        cv2.setUseOptimized(True)
        try:
            self._kf = cv2.kinfu_KinFu.create(kp)
        except cv2.error as ex:
            # stock contrib wheels ship kinfu without the patented implementation
            raise EngineInitFailed(
                "KinectFusion is unavailable in this OpenCV build; "
                f"it needs opencv-contrib compiled with OPENCV_ENABLE_NONFREE=ON ({ex})"
            ) from ex

    def update(self, depth: np.ndarray) -> bool:
        # kinfu keeps a reference to its input
        return bool(self._kf.update(np.ascontiguousarray(depth).copy()))

    def reset(self) -> None:
        self._kf.reset()

    def get_cloud(self) -> Tuple[np.ndarray, np.ndarray]:
        points, normals = self._kf.getCloud()
        if points is None or normals is None:
            return np.zeros((0, 3), np.float32), np.zeros((0, 3), np.float32)
        points = np.asarray(points).reshape(-1, 4)[:, :3]
        normals = np.asarray(normals).reshape(-1, 4)[:, :3]
        return points, normals

    def get_pose(self) -> np.ndarray:
        return _as_pose(self._kf.getPose())

    def render(self, view_pose: np.ndarray | None = None) -> np.ndarray:
        if view_pose is None:
            return self._kf.render()
        return self._kf.render(cameraPose=np.asarray(view_pose, dtype=np.float32))

    def get_params(self) -> EngineParams:
        return self.params
