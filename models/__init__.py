"""
models/ - Domain Layer
======================
Plain dataclasses shared by every other layer: subscriptions, reminder
records and notification messages.
"""
