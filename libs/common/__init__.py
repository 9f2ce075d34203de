"""Configuration and error types shared by every package."""
