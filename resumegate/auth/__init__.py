"""Authentication and capability checks."""
