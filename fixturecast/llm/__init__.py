"""Forecast oracle: Gemini client, outcome schema and generator."""
