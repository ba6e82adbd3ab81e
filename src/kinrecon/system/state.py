import enum
from dataclasses import dataclass, field
import numpy as np

class RunMode(enum.Enum):
    IDLE = "idle"        # preview only, fusion disabled for the whole run
    RUNNING = "running"
    PAUSED = "paused"

@dataclass
class LoopState:
    mode: RunMode = RunMode.RUNNING
    frame_idx: int = 0

    # camera positions, one per successful fusion update; never cleared by reset
    trajectory: list[np.ndarray] = field(default_factory=list)

    prev_tick: int = 0
    fps: float = 0.0
    rendered: np.ndarray | None = None  # last display image

    @property
    def idle(self) -> bool:
        return self.mode is RunMode.IDLE
