"""Configuration: settings and static tier/model tables."""
