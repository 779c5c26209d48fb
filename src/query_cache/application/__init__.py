"""
Application Layer

FastAPI application exposing cache health, statistics and clearing.
"""
