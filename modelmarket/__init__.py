"""RL model ownership ledger.

This package contains:
- config: Configuration loading and management
- world: Funds ledger, model registry, marketplace and the World that owns them
- metadata: Metadata document generation for minted models
"""

from __future__ import annotations

__all__: list[str] = []
