"""Typer sub-applications for the docforge command."""
