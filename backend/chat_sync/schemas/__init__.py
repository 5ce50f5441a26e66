"""Pydantic schemas for local records, remote documents and API payloads."""
