"""Roomchat backend package."""
