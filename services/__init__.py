"""
services/ - Business Logic Layer
================================
Billing date arithmetic, due-window selection, reminder deduplication,
dispatch with retries, and the scheduler that runs reminder passes.
"""
