"""
Catalog sync pipeline components.

Modules:
    base: Source items and the abstract checkpoint-aware data source
    checkpoints: File and database checkpoint stores
    images: Image resolution with a run-scoped negative cache
    runner: Pipeline state machine (stream, normalize, load, checkpoint)
    pipelines: Wiring for the Cosmos and OpenFoodFacts flows

Subpackages:
    extractors: Cosmos category API and JSON Lines dump sources
    transformers: Source-specific normalizers to the canonical product
    loaders: Upsert and bulk-insert persistence strategies
    storage: Local and S3 asset stores

Usage:
    runner = build_openfoodfacts_pipeline(session, "products.jsonl", checkpoints)
    summary = await runner.run()
    print(summary.log_line())

Error Handling:
    Only source and checkpoint I/O failures abort a run, raising
    PipelineAbortedError with the partial summary. Everything else is
    counted in the RunSummary.
"""

__all__ = [
    "base",
    "checkpoints",
    "images",
    "runner",
    "pipelines",
]
