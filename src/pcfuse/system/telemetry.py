class Telemetry:
    """Per-frame registration records, dumped to metrics.json by the CLI."""

    def __init__(self):
        self.frames = []

    def log_frame(self, idx: int, rec: dict):
        rec["frame_idx"] = idx
        self.frames.append(rec)

    def last(self) -> dict | None:
        return self.frames[-1] if self.frames else None

    def summary(self) -> dict:
        chosen = [f.get("chosen", {}).get("name") for f in self.frames]
        ratios = [
            p["inlier_ratio"]
            for f in self.frames
            for p in f.get("proposals", [])
            if p["name"] == "sac" and p["num_correspondences"] > 0
        ]
        return {
            "frames": len(self.frames),
            "registered": chosen.count("sac"),
            "held": chosen.count("hold"),
            "mean_inlier_ratio": (sum(ratios) / len(ratios)) if ratios else None,
        }
