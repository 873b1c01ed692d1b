"""
API routes.

- leagues: rankings, refresh, live updates, eliminations, operator team
"""
