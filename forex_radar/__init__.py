"""
ForexRadar: AI-powered forex chart analysis.
"""

__version__ = "1.0.0"
