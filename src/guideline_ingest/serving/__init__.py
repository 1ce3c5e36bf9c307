"""
Serving — FastAPI application exposing the ingestion trigger and job status.
"""
