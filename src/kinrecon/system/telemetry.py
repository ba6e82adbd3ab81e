class Telemetry:
    def __init__(self):
        self.frames = []
        self.events = []

    def log_frame(self, idx: int, rec: dict):
        rec["frame_idx"] = idx
        self.frames.append(rec)

    def log_event(self, idx: int, name: str):
        self.events.append({"frame_idx": idx, "event": name})
