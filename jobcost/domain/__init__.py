"""
Domain layer - entities, services and exceptions for job cost forecasting.
"""
