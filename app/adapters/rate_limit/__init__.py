"""Counter backends.

Two interchangeable fixed-window stores behind ``AbstractCounterBackend``:
Redis (shared across gateway processes) and an in-process map used whenever
Redis is unconfigured or unreachable.
"""
