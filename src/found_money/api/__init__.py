"""HTTP API for found-money."""
