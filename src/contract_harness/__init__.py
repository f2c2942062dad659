"""Protocol-overlay generation and contract verification for async order services."""
