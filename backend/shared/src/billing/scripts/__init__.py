"""Operational scripts for the billing engine."""
