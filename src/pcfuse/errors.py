class RegistrationError(ValueError):
    """Base class for everything the registration pipeline raises on bad input."""


class DimensionMismatch(RegistrationError):
    """Descriptor lengths disagree with each other or with the configured length."""


class EmptyCorrespondenceSet(RegistrationError):
    """No correspondences to estimate a transform from."""


class DegenerateSample(RegistrationError):
    """A minimal sample does not determine a rigid transform (e.g. colinear points)."""


class InsufficientFrame(RegistrationError):
    """An input cloud has fewer points or keypoints than registration needs."""


class InvalidCorrespondence(RegistrationError, IndexError):
    """A correspondence refers to an index outside its keypoint cloud."""
