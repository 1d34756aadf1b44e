"""
Pure domain logic: enums, the commission calculator and billing predicates.

Nothing in this package touches the database or FastAPI, so it can be unit
tested without fixtures.
"""
