"""Core board rules (slide/merge, spawn targets, win/loss checks).

Kept free of FastAPI and Redis concerns so it can be reused by the engine, API routes, and tests.
"""
