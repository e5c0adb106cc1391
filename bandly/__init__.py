"""
BandLy - IELTS essay scoring client
"""

__version__ = "1.0.0"
