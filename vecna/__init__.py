"""Vecna: board game content pipeline."""
