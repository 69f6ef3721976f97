"""Pipelines for requirement ingestion, normalization, matching and projects.

Each step is callable on its own so the matching core can run without a
database session.
"""
