"""Compose acceptance test cases."""
