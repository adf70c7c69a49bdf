"""
pawnmem — Tiered Agent Memory for Simulation Pawns

This package gives every simulated agent ("pawn") a bounded, four-tier memory
that ages as the simulation runs, ranks what matters for the next prompt, and
periodically compresses older tiers through an external summarization model.

Architecture layers (bottom to top):
    1. Simulation clock (ticks, days, humanized ages)
    2. Memory entries and the four-tier store (Active → Situational → EventLog → Archive)
    3. Relevance scoring and prompt injection
    4. Shared knowledge library
    5. Summarization pipeline (fingerprint cache, retries, host-loop callbacks)
    6. World manager (tick cadence, persistence)
"""

__version__ = "0.1.0"
