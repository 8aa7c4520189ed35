"""Core configuration for forum-sync."""
