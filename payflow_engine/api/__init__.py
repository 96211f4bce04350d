"""REST API for manual workflow runs."""
