"""Migration orchestration."""
