"""API clients for the bug tracker, GitHub and the attachment file store."""
