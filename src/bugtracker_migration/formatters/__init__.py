"""Markdown formatting of legacy records."""
