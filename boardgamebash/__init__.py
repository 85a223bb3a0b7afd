"""Boardgame Bash: game-night planning with RSVPs and game preferences."""
