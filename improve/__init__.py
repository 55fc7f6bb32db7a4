"""ImproVe: live sensory-dissonance feedback on a fretboard."""

__version__ = "0.3.0"
