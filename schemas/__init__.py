"""
Pydantic schemas for data validation and serialization.

Schemas:
    normalized: Canonical ProductCreate record produced by the normalizers
    sources: Raw record shapes for the Cosmos API and the OpenFoodFacts dump
    pipeline: Checkpoint, NormalizationResult, LoadResult and RunSummary

Usage:
    from schemas.normalized import ProductCreate
    from schemas.pipeline import Checkpoint, RunSummary

Validation:
    Raw upstream JSON is validated at the normalizer boundary; a record that
    does not fit its source model is rejected, not raised.
"""

__all__ = [
    "normalized",
    "sources",
    "pipeline",
]
