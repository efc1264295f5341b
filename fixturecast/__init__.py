"""Fixture ingestion, reconciliation and forecast pipeline."""
