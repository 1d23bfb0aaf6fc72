"""
Error taxonomy for the angle pipeline.

Per-frame problems degrade a single frame's output and never abort a live
session. Template-learning problems are terminal for that one learning call
and are raised to the caller.
"""


class RepCoachError(Exception):
    """Base class for all pipeline errors."""


class MissingLandmarkData(RepCoachError):
    """A landmark needed for one angle is absent or below the confidence floor."""

    def __init__(self, landmark, reason: str = "missing"):
        self.landmark = landmark
        self.reason = reason
        name = getattr(landmark, "name", landmark)
        super().__init__(f"Landmark {name} unavailable: {reason}")


class InsufficientDataError(RepCoachError):
    """Not enough frames or distinct feature vectors to learn a template."""


class LearningCancelledError(RepCoachError):
    """Template learning was cancelled between k-means iterations."""


class NoTemplateLoadedError(RepCoachError):
    """Template-relative classification or scoring requested without a template."""


class EmptyClusterWarning(UserWarning):
    """A k-means cluster received no members; its state is dropped."""
