"""
AutoFinish - Automated TODO processing for coding agents.

This package turns a free-form list of action items into tasks, orders them
by their dependencies, and drives each one to completion through a coding
agent with a bounded confirmation protocol, session tracking and telemetry.
"""

__version__ = "0.1.0"
