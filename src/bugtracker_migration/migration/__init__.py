"""Posting legacy records to GitHub."""
