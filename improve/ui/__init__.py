"""Fretboard displays."""
