"""Configuration, logging, errors, resilience and scheduling."""
