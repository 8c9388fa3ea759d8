"""Metrics counters and health endpoints."""
