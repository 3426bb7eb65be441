"""Flow reconciliation: canonicalization, drift classification and sync.

This package provides the primitives for:
- Canonicalization: removing server-assigned fields before comparison
- Drift detection: hashing canonical definitions to classify divergence
- Sync: turning selected drifted flows into a branch and a merge request
- Results: reading the latest E2E run results for a flow
"""
