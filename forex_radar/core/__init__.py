"""
Core modules for ForexRadar.

This package contains chart analysis, prompt building, plan limits,
usage metering and trading pair handling.
"""
