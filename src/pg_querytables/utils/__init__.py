"""Helpers for making templated map queries concrete."""
