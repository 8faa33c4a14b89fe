"""Fundee Cash backend: daily draw lifecycle and ticket economy engine."""
