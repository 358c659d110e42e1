'''
Insight Engine Test Suite

Test Modules:
-------------
- test_kb_slicer.py: Knowledge base slicing
  - Vertical and tag filtering, catalog order preserved
  - Tolerance of malformed catalog data

- test_signals.py: Signal detection
  - Benchmark thresholds, direct vs inferred answers
  - Vertical restriction of rules

- test_impact_estimator.py: Conservative ROI and confidence
  - min(ROI low, recovery rate x loss)
  - Zero impact when nothing supports an estimate
  - Confidence ceiling of 95

- test_assembler.py: Dedup and caps
  - Key normalization, cross-run dedup
  - At most 4 per run, 1 per section

- test_validation.py: Validation boundary
  - Field paths of the first failure
  - Response invariants

- test_cache.py: TTL cache
  - Expiry, eviction, counters

- test_generation.py: Narration clients
  - Template wording, JSON recovery, Anthropic client with a mocked SDK

- test_pipeline.py: End-to-end generation
  - Gate, caching, dedup across sections, retry budget

- test_orchestrator.py: Request orchestration
  - Supersession, failure, status side channel

- test_api.py: HTTP endpoints

Run all tests:
    pytest insight_engine/tests/ -v
'''
