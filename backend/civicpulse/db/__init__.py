"""
Incident and user records.
"""
