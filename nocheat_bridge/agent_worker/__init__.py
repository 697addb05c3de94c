"""
Agent worker package: runs bridge batches on a dedicated background thread
so that hosts never block their own loop on the engine call.
"""

from nocheat_bridge.agent_worker.analyzer import BackgroundAnalyzer

__all__ = ["BackgroundAnalyzer"]
