"""Core feature store components."""
