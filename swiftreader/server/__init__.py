"""HTTP façade over the session controller (FastAPI)."""
