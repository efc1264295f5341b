"""Forecast grading against settled results."""
