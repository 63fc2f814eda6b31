"""Typer application, rich rendering and interactive prompts."""
