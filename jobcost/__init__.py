"""
Job Cost Forecasting - earned value and cost-to-complete for construction jobs.
"""
__version__ = "1.0.0"
