"""
handlers/ - Telegram Commands
=============================
User commands manage subscriptions and where their reminders go.
Operator commands drive and inspect the reminder scheduler.
Handlers parse input, call a service and reply; they hold no state.
"""
