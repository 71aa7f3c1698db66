"""
RFP Scoring Tools.

Submodules:
- auto_score: Supplier response auto-scoring (rule-based + AI semantic),
  must-have policy, buyer override preservation and evaluation summary
"""

from rfp_tools import auto_score

__all__ = [
    "auto_score",
]
