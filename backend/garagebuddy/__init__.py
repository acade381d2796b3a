"""GarageBuddy data-access core.

This package exposes the generic repository, the identity managers, the
domain services and the reference-data seeders. It is intentionally
lightweight; individual modules contain the concrete implementations and
documentation.
"""
