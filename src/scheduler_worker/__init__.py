"""Celery worker that drives periodic due checks."""
