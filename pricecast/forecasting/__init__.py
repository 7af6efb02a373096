"""Prompt construction, provider bindings and response repair."""
