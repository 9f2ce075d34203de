"""Prompt templates and static response text."""
