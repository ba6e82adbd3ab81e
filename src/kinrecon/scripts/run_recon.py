from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

import numpy as np

try:
    import yaml
except ImportError as ex:
    raise ImportError("PyYAML is required. Install with: pip install pyyaml") from ex

from kinrecon.engine.kinfu import EngineInitFailed, KinFuEngine, build_params
from kinrecon.sources.depth_source import open_depth_source
from kinrecon.sources.errors import AcquisitionError, DeviceError, ManifestUnreadable
from kinrecon.system.loop import ReconstructionLoop
from kinrecon.system.telemetry import Telemetry
from kinrecon.viz.display import CvDisplay
from kinrecon.viz.window import MplVizWindow


def load_config(path: str) -> dict:
    if not os.path.isfile(path):
        print(f"[WARN] Config not found: {path}, using built-in defaults")
        return {}
    print(f"[INFO] Loading config: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _write_trajectory(trajectory: list[np.ndarray], out_path: str) -> None:
    with open(out_path, "w", encoding="utf-8") as f:
        for p in trajectory:
            f.write(f"{p[0]:.6f} {p[1]:.6f} {p[2]:.6f}\n")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Live or replayed depth stream -> KinectFusion reconstruction")
    ap.add_argument("--config", type=str, default="configs/default.yaml")
    ap.add_argument("--depth", type=str, default=None, help="Path to depth.txt file listing a set of depth images")
    ap.add_argument("--camera", action="store_true", help="Use connected camera to run")
    ap.add_argument("--coarse", action="store_true",
                    help="Run on coarse settings (fast but ugly) instead of default (slow but looks better)")
    ap.add_argument("--idle", action="store_true", help="Do not run fusion, just display depth frames")
    ap.add_argument("--color", action="store_true", help="Show color stream (reserved, no effect)")
    ap.add_argument("--out_dir", type=str, default=None, help="Write trajectory and per-frame metrics here on exit")
    return ap


def main(argv: list[str] | None = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if not args.camera and args.depth is None:
        ap.error("one of --depth or --camera is required")
    if args.color:
        print("[WARN] --color is reserved and has no effect")

    cfg = load_config(args.config)

    try:
        source = open_depth_source(args.camera, args.depth, cfg)
    except (ManifestUnreadable, DeviceError) as ex:
        print(f"[ERROR] {ex}")
        return 1
    print(f"[INFO] Depth source created: {source.mode.value}")

    engine = None
    if not args.idle:
        try:
            engine = KinFuEngine(build_params(cfg, coarse=args.coarse))
        except EngineInitFailed as ex:
            print(f"[ERROR] {ex}")
            return 1
        print(f"[INFO] Fusion engine created ({'coarse' if args.coarse else 'default'} params)")

    viz = cfg.get("viz", {})
    window = MplVizWindow("Cloud", max_points=int(viz.get("max_points", 20000)))
    display = CvDisplay("render")
    telemetry = Telemetry()

    loop = ReconstructionLoop(source, engine, window, display, cfg, telemetry, idle=args.idle)
    print("[INFO] Starting loop")
    try:
        result = loop.run()
    except AcquisitionError as ex:
        print(f"[ERROR] {ex}")
        return 1
    finally:
        display.close()

    print(f"[INFO] Processed {result.frames} frames, trajectory has {result.trajectory_len} points")

    if args.out_dir:
        out_dir = Path(args.out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        traj_path = str(out_dir / "trajectory.txt")
        metrics_path = str(out_dir / "metrics.json")
        cfg_path = str(out_dir / "config_used.yaml")

        _write_trajectory(loop.state.trajectory, traj_path)
        with open(metrics_path, "w", encoding="utf-8") as f:
            json.dump({"frames": telemetry.frames, "events": telemetry.events}, f, indent=2)
        with open(cfg_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(cfg, f, sort_keys=False)

        print(f"[OK] wrote: {traj_path}")
        print(f"[OK] wrote: {metrics_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
