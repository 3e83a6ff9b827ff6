"""Purchase order tracker: spreadsheet upload, status tracking and follow-up reports."""

__version__ = "0.3.0"
