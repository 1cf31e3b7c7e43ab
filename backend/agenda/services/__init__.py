"""Scheduling and financial services."""
