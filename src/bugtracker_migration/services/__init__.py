"""Extraction, attachment and link services."""
