"""Real-time dissonance analysis: extraction, model, curve, fretboard, pipeline."""
