"""Pharmacy Discovery — ranking engine (pure algorithms, no I/O)."""
