"""
PulseRelay mobile client: location sharing sync, tracking and device preferences.
"""
