"""Externally triggered runs and job tracking."""
