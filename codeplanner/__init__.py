# FILE: codeplanner/__init__.py
"""
CodePlanner job pipeline.

Gateway (WebSocket) -> Broker (pub/sub) -> Worker (index / plan / analyze-error)
with a SQL-backed similarity store and rate-limited LLM access.
"""

__version__ = "0.3.0"
