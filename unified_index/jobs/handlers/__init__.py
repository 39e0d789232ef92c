"""Per-source handlers that apply queue items to base records."""
