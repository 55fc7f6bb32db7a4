"""True-colour terminal fretboard."""

import sys
from typing import Optional, TextIO, Tuple

from ..analysis_types import DisplayGrid
from ..logger import get_logger
from ..services.interfaces import IDisplay

logger = get_logger(__name__)

RESET = "\x1b[0;0m"
CELL_WIDTH = 3


def cell_color(value: float) -> Tuple[int, int, int]:
    """RGB background for a normalized dissonance: green when consonant, red when dissonant."""
    gradient = int(min(max(value, 0.0), 1.0) * 255)
    return gradient, 255 - gradient, gradient // 4


def colored_cell(label: str, value: float) -> str:
    red, green, blue = cell_color(value)
    return f"\x1b[30;48;2;{red};{green};{blue}m{label:^{CELL_WIDTH}}"


class TerminalFretboard(IDisplay):
    """Draws the fretboard with ANSI true-colour escapes.

    The highest string is drawn at the top, as a player looks down at the
    neck. With ``clear`` set the previous drawing is overwritten in place.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        clear: bool = True,
        show_legend: bool = True,
    ):
        self._stream = stream or sys.stdout
        self._clear = clear
        self._show_legend = show_legend
        self._lines_drawn = 0
        self._open = True

    def render(self, grid: DisplayGrid) -> str:
        """Return the escape-coded text for one grid."""
        strings, positions = grid.shape
        levels = grid.dissonance_levels()
        lines = [" 0 |" + "".join(f"{fret:^{CELL_WIDTH}}" for fret in range(1, positions))]

        for string in reversed(range(strings)):
            cells = []
            for fret in range(positions):
                label = grid.labels[string][fret] if grid.labels else ""
                cells.append(colored_cell(label, float(levels[string, fret])))
                if fret == 0:
                    cells.append(f"{RESET}|")
            lines.append("".join(cells) + RESET)

        if self._show_legend:
            lines.append(
                f"dissonance {grid.raw_min:.4f} {colored_cell('', 0.0)}{RESET}"
                f"..{colored_cell('', 1.0)}{RESET} {grid.raw_max:.4f}"
            )
        return "\n".join(lines) + "\n"

    def show(self, grid: DisplayGrid) -> None:
        text = self.render(grid)
        if self._clear and self._lines_drawn:
            # Move the cursor back over the previous drawing
            text = f"\x1b[{self._lines_drawn}A" + text
        self._stream.write(text)
        self._stream.flush()
        self._lines_drawn = text.count("\n")

    def close(self) -> None:
        self._stream.write(RESET)
        self._stream.flush()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open
