"""
NoCheat Bridge: marshalling layer between a batch-analysis client and the
NoCheat behavioral-analysis engine.

Aggregates per-entity stats into one JSON batch, calls the engine through its
C entry points, takes ownership of the engine-allocated response buffer,
decodes it into typed results and releases the buffer exactly once.
"""

__version__ = "0.1.0"
