"""Pydantic schemas for the API and the client."""
