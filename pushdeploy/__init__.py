"""
Pushdeploy - deployment orchestrator for git push based platforms.

This package provides a CLI that pushes the current branch to a named
environment's remote, wrapped in ordered before/after deploy hooks.
"""

__version__ = "0.1.0"
