"""Pydantic request/response models (API contract)."""
