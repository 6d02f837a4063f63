"""Two-way sync of flashcards between a local card store and a GitHub repository."""

__version__ = "0.1.0"
