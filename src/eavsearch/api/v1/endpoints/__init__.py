"""Endpoint modules mounted by the v1 router."""
