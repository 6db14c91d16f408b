"""
Outbound integrations for ForexRadar.
"""
