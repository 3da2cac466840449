"""TATAME HTTP API (FastAPI)."""
