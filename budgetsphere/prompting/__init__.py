"""Prompt construction package for handler system and user prompts."""
