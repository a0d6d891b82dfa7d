"""
CivicPulse: crowd-sourced civic incident reporting board.
"""

__version__ = "1.0.0"
