"""RepCoach: exercise repetition counting and form scoring from body landmarks."""

__version__ = "0.1.0"
