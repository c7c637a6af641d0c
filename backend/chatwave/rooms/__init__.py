"""Room catalog and presence stats REST endpoints."""
