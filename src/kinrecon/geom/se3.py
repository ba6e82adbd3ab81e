import numpy as np

def Rt_to_T(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3,:3] = R
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T

def translation(x: float, y: float, z: float) -> np.ndarray:
    return Rt_to_T(np.eye(3), np.array([x, y, z]))

def transform_point(T: np.ndarray, p) -> np.ndarray:
    p = np.asarray(p, dtype=np.float64).reshape(3)
    return T[:3,:3] @ p + T[:3, 3]

def look_at(eye: np.ndarray, target: np.ndarray, up=(0.0, -1.0, 0.0)) -> np.ndarray:
    """
    Camera-to-world pose for a camera at `eye` looking at `target`.
    Camera axes follow the depth sensor convention: x right, y down, z forward.
    """
    eye = np.asarray(eye, dtype=np.float64)
    z = np.asarray(target, dtype=np.float64) - eye
    z /= np.linalg.norm(z) + 1e-12
    x = np.cross(z, np.asarray(up, dtype=np.float64))
    if np.linalg.norm(x) < 1e-9:
        # looking straight along up
        x = np.array([1.0, 0.0, 0.0])
    x /= np.linalg.norm(x)
    y = np.cross(z, x)
    return Rt_to_T(np.stack([x, y, z], axis=1), eye)
