"""Pharmacy Discovery — HTTP API (FastAPI)."""
