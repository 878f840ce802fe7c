"""
Utility helpers for Voice Pruner.
"""
