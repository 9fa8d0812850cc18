"""Celery tasks for the Vecna pipeline."""
