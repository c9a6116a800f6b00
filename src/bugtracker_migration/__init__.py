"""Transfer bugs from a BugTracker.NET website to GitHub issues."""

__version__ = '1.0.0'
