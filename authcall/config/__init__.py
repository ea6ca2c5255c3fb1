"""Configuration constants and loading for authenticated request execution."""
