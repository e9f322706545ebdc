"""Scheduler worker tasks."""
