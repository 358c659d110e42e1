"""
Insight Engine Package.

FastAPI service that turns a just-completed business audit section into at
most four conservatively-priced, deduplicated recommendations.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, exceptions and dependencies
    - models: Pydantic schemas and enums
    - services: Slicer, estimator, assembler, cache, pipeline, orchestrator
    - kb: Static knowledge base (skills, claims, sections, recovery rates)
"""

__version__ = "1.0.0"
