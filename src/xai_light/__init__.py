"""
XAI Light - Trusting light client verification core

Lets a resource-constrained peer move its trust from an already trusted block
header to a newer one using only validator signatures and voting-power
arithmetic.

Main Components:
- Data model: headers, commits, validator sets and votes
- Verifier: voting-power tally, trust thresholds, trusting-period checks
- Evidence: opaque misbehavior proofs and duplicate-vote decoding
- ABCI tags: key/value annotations for execution results
"""

__version__ = "0.1.0"
__author__ = "XAI Development Team"

__all__ = []
