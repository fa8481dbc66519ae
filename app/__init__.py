"""
FastAPI Application Package

Entry point of the Drift market cache service: REST endpoints for reading
cached markets, the scheduled refresh hook and health monitoring.
"""
