"""
security/ - Access Control
==========================
Whitelists and rate limiting for the bot's command handlers.
"""
