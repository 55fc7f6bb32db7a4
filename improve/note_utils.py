"""Utility functions for working with musical notes and frequencies."""

import re
from enum import Enum
from typing import Dict, List

import numpy as np


# Standard reference: A4 = 440Hz, MIDI note 69
A4_FREQUENCY = 440.0
A4_MIDI = 69

SHARP_NOTES: List[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
FLAT_NOTES: List[str] = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]
ROMANCE_NOTES: List[str] = [
    "Do",
    "Do#",
    "Ré",
    "Ré#",
    "Mi",
    "Fa",
    "Fa#",
    "Sol",
    "Sol#",
    "La",
    "La#",
    "Si",
]

# Mapping between sharp and flat note names
SHARP_TO_FLAT: Dict[str, str] = {
    "C#": "Db",
    "D#": "Eb",
    "F#": "Gb",
    "G#": "Ab",
    "A#": "Bb",
}
FLAT_TO_SHARP: Dict[str, str] = {v: k for k, v in SHARP_TO_FLAT.items()}
# Enharmonic spellings that cross a letter boundary
FLAT_TO_SHARP.update({"Cb": "B", "Fb": "E", "E#": "F", "B#": "C"})

NOTE_PATTERN = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")


class Notation(Enum):
    """Note naming convention used for display labels."""

    ENGLISH = "english"
    ROMANCE = "romance"

    def names(self, use_flats: bool = False) -> List[str]:
        if self is Notation.ROMANCE:
            return ROMANCE_NOTES
        return FLAT_NOTES if use_flats else SHARP_NOTES


def midi_to_frequency(midi: float, reference: float = A4_FREQUENCY, divisions: int = 12) -> float:
    """Frequency of a pitch step on an equal-tempered lattice.

    Args:
        midi: Step number; A4 is 69 when ``divisions`` is 12
        reference: Frequency of A4 in Hz
        divisions: Equal divisions of the octave

    Returns:
        Frequency in Hz
    """
    return float(reference * 2.0 ** ((midi - A4_MIDI) / divisions))


def frequency_to_midi(freq: float, reference: float = A4_FREQUENCY) -> float:
    """Fractional MIDI number of a frequency (A4 = 69)."""
    if freq <= 0:
        raise ValueError(f"Frequency must be positive, got {freq}")
    return float(A4_MIDI + 12 * np.log2(freq / reference))


def get_note_name(freq: float, use_flats: bool = False) -> str:
    """Convert frequency to note name using Scientific Pitch Notation (SPN).

    Args:
        freq: Frequency in Hz
        use_flats: If True, use flat notes (e.g., 'Bb') instead of sharps (e.g., 'A#')

    Returns:
        Note name with octave in SPN (e.g., 'A4', 'C#4', 'Bb3'), or '---' for
        a non-positive frequency

    Note:
        - Middle C is C4 (261.63 Hz)
        - Octave numbers change between B and C (e.g., B3 -> C4)
    """
    if freq <= 0:
        return "---"

    midi_number = int(round(frequency_to_midi(freq)))
    return midi_to_note_name(midi_number, use_flats=use_flats)


def midi_to_note_name(
    midi: int, use_flats: bool = False, notation: Notation = Notation.ENGLISH
) -> str:
    """Name of a MIDI note number, e.g. 69 -> 'A4'."""
    octave = (midi // 12) - 1
    return f"{notation.names(use_flats)[midi % 12]}{octave}"


def pitch_class_label(
    midi: int, use_flats: bool = False, notation: Notation = Notation.ENGLISH
) -> str:
    """Octave-less name of a MIDI note number, e.g. 69 -> 'A'."""
    return notation.names(use_flats)[midi % 12]


def note_name_to_midi(note_name: str) -> int:
    """Parse an SPN note name ('E2', 'F#3', 'Bb1') into a MIDI number.

    Raises:
        ValueError: If the name cannot be parsed
    """
    match = NOTE_PATTERN.match(note_name.strip()) if isinstance(note_name, str) else None
    if not match:
        raise ValueError(f"Invalid note name: {note_name!r}")

    letter, accidental, octave = match.groups()
    name = letter.upper() + accidental
    octave = int(octave)

    # Crossing B/C moves the octave number
    if name == "Cb":
        octave -= 1
    elif name == "B#":
        octave += 1
    name = FLAT_TO_SHARP.get(name, name)

    return (octave + 1) * 12 + SHARP_NOTES.index(name)


def note_name_to_frequency(note_name: str, reference: float = A4_FREQUENCY) -> float:
    """Frequency of an SPN note name, e.g. 'A4' -> 440.0."""
    return midi_to_frequency(note_name_to_midi(note_name), reference=reference)
