"""StudyFocus: a focus timer that stays correct across views and restarts."""

__version__ = "0.1.0"
