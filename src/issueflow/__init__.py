"""Issue triage and execution planning for an external issue tracker.

This package provides:
- An issue lifecycle state machine with automatic priority and label assignment
- A sequential agent pipeline that republishes lifecycle events
- A task graph builder that levels decomposed work and detects cycles
- GitHub, LLM and git adapters for the capability ports agents consume
"""
