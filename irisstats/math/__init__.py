"""
Statistical routines for irisstats.
"""
