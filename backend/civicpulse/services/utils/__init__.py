"""
Pure helpers shared by the services: time, geography and text normalization.
"""
