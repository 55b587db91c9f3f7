"""Static game configuration data."""
