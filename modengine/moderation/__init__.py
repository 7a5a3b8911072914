"""Moderation — the report lifecycle.

This package provides:
- Intake: validated, sanitized, prioritized report creation
- Queue: the state machine plus listing, assignment and statistics
- Executor: applying sanctions with an audit record per decision
- SLA monitor: sweeping for reports past their response deadline
"""
