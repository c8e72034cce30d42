"""Helpers shared by the CLI, the API and the library store."""
