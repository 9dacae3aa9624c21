from .proposal import Proposal

APPLY_ANYWAY = "apply_anyway"
HOLD_LAST_TRANSFORM = "hold_last_transform"
POLICIES = (APPLY_ANYWAY, HOLD_LAST_TRANSFORM)


class RegistrationPolicy:
    """
    Picks the relative motion committed for a frame.

    apply_anyway: any estimate that actually ran is applied, even one with
        zero inliers (identity). Only frames that never reached estimation
        (no correspondences, bad descriptors) hold the pose.
    hold_last_transform: only estimates flagged valid are applied.
    """

    def __init__(self, on_empty_correspondences: str = APPLY_ANYWAY):
        if on_empty_correspondences not in POLICIES:
            raise ValueError(
                f"on_empty_correspondences must be one of {POLICIES}, got {on_empty_correspondences!r}"
            )
        self.mode = on_empty_correspondences

    def choose(self, proposals: list[Proposal]) -> Proposal:
        sac = next((p for p in proposals if p.name == "sac"), None)
        if sac is not None and sac.valid:
            sac.reason = "ACCEPT_SAC"
            return sac
        if sac is not None and self.mode == APPLY_ANYWAY and sac.evidence.num_correspondences > 0:
            sac.reason = f"APPLY_ANYWAY_SAC:{sac.evidence.num_inliers}"
            return sac

        hold = next((p for p in proposals if p.name == "hold" and p.valid), None)
        if hold:
            hold.reason = "HOLD_LAST_TRANSFORM"
            return hold

        # should not happen
        return proposals[0]
