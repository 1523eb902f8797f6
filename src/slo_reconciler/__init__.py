"""
slo-reconciler package root.

Purpose
- Evaluate Service-Level-Objective analyses: resolve each objective's metric
  value through providers, cache partial progress in the analysis status, and
  compute a weighted pass/warning verdict.

Import boundaries
- Must not have side effects at import time (no config loading, no logging init).
- Subpackages are imported explicitly by callers; nothing heavy is re-exported here.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
