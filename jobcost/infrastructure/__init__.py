"""
Infrastructure layer - persistence adapters.
"""
