"""Configuration, domain entities and the error taxonomy."""
