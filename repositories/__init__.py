"""
repositories/ - Data Access Layer
=================================
SQL for the users, subscriptions and reminder_records tables.
Rows come back as domain objects; state changes that can race are
written as single conditional statements.
"""
