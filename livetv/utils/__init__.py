"""Utility helpers for the LiveTV catalog service."""
