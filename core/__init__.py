"""
Core package of the imgpaste service: application wiring and request security.
The FastAPI application lives in ``core.app_state``.
"""
