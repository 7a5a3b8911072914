"""modengine — content moderation and report-processing engine."""

__version__ = "0.1.0"
