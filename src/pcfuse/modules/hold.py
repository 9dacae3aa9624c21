import numpy as np
from ..system.proposal import Proposal, Evidence

def propose_hold() -> Proposal:
    # no relative motion: the new frame is merged with the last global pose
    return Proposal("hold", np.eye(4), Evidence(), valid=True)
