"""
Test suites package.

Kept importable so that `run_tests.py`, the unit tests and the compose
acceptance tests can share the harness under `testsuites.compose_testing`.
"""
