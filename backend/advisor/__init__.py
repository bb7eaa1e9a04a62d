"""Multi-cloud cost and placement advisor."""
