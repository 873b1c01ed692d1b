"""Domain services: scoring, ranking, tiers, identity and refresh coordination."""
