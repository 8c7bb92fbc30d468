"""API route modules for the Pharmacy Discovery API."""
