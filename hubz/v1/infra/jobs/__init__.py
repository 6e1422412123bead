"""
Background jobs.

This package provides the persisted job queue with:
- A SQL job store whose status changes are conditional updates
- Registry-based pluggable handlers keyed by job type
- A processing engine with bounded retries, cleanup and stuck job recovery
"""
