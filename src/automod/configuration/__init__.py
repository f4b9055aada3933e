"""Application configuration (YAML) and per-guild automod settings."""
