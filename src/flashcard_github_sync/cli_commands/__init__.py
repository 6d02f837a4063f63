"""CLI command modules for flashcard-github-sync.

- shared.py: Common utilities (config/logger loading, console, engine wiring)
- sync_commands.py: sync, push, pull, retry, status, watch, add-card
"""
