import time
from typing import Callable, Optional

import numpy as np
import pygame

from ..analysis.pipeline import HandoffQueue
from ..analysis_types import DisplayGrid
from ..logger import get_logger
from ..services.interfaces import IDisplay
from .terminal import cell_color

# Get logger for this module
logger = get_logger(__name__)


class PygameFretboardUI(IDisplay):
    """Pygame window showing the fretboard and the current spectrum.

    ``show`` may be called from the analysis thread; it only hands the grid
    over. Drawing happens in ``run`` on the thread that owns the window,
    always with the newest grid.
    """

    def __init__(self, width: int = 1280, height: int = 480, fps: int = 30, max_frequency: float = 4000.0):
        """Initialize the Pygame UI"""
        self.screen = None
        self.width = width
        self.height = height
        self.fps = fps
        self.max_frequency = max_frequency
        self.bg_color = (20, 20, 30)
        self.text_color = (0, 0, 0)
        self.header_color = (200, 200, 255)
        self.spectrum_color = (180, 255, 180)
        self.initialized = False
        self.clock = None

        self.small_font = None
        self.medium_font = None

        self._grids: HandoffQueue[DisplayGrid] = HandoffQueue(capacity=1, skip=True)
        self._grid: Optional[DisplayGrid] = None
        self._open = True

        logger.debug("Initializing PygameFretboardUI")

    def init_screen(self):
        """Initialize the Pygame screen and resources"""
        try:
            pygame.init()
            self.screen = pygame.display.set_mode((self.width, self.height))
            pygame.display.set_caption("ImproVe")

            self.small_font = pygame.font.SysFont("Arial", 14)
            self.medium_font = pygame.font.SysFont("Arial", 20)

            self.clock = pygame.time.Clock()
            self.initialized = True
            logger.info("Pygame UI initialized successfully")
            return self.screen

        except Exception as e:
            logger.error(f"Failed to initialize Pygame: {e}")
            self.cleanup()
            raise

    def show(self, grid: DisplayGrid) -> None:
        self._grids.put(grid)

    def close(self) -> None:
        self._open = False
        self._grids.close()

    @property
    def is_open(self) -> bool:
        return self._open

    def update_display(self, grid: DisplayGrid):
        """Draw one grid: fret numbers, coloured cells, spectrum strip.

        Args:
            grid: The grid to draw
        """
        if not self.initialized or not self.screen:
            return

        self.screen.fill(self.bg_color)

        strings, positions = grid.shape
        levels = grid.dissonance_levels()
        board_top = 40
        spectrum_height = self.height // 4
        board_height = self.height - board_top - spectrum_height - 20
        cell_w = self.width / positions
        cell_h = board_height / strings

        # Fret numbers
        for fret in range(positions):
            surface = self.small_font.render(str(fret), True, self.header_color)
            rect = surface.get_rect(center=(int((fret + 0.5) * cell_w), board_top // 2))
            self.screen.blit(surface, rect)

        # Highest string on top
        for row, string in enumerate(reversed(range(strings))):
            for fret in range(positions):
                rect = pygame.Rect(
                    int(fret * cell_w), int(board_top + row * cell_h), int(cell_w) - 1, int(cell_h) - 1
                )
                pygame.draw.rect(self.screen, cell_color(float(levels[string, fret])), rect)
                if grid.labels:
                    label = self.small_font.render(grid.labels[string][fret], True, self.text_color)
                    self.screen.blit(label, label.get_rect(center=rect.center))
            # Nut
            nut_x = int(cell_w) - 1
            pygame.draw.line(
                self.screen,
                (255, 255, 255),
                (nut_x, int(board_top + row * cell_h)),
                (nut_x, int(board_top + (row + 1) * cell_h)),
                2,
            )

        self._draw_spectrum(grid, self.height - spectrum_height, spectrum_height)

        legend = f"dissonance {grid.raw_min:.4f} .. {grid.raw_max:.4f}"
        surface = self.small_font.render(legend, True, self.header_color)
        self.screen.blit(surface, surface.get_rect(topright=(self.width - 10, self.height - spectrum_height - 18)))

        pygame.display.flip()

    def _draw_spectrum(self, grid: DisplayGrid, top: int, height: int):
        """Vertical bar per sounding component, x on a log frequency axis."""
        components = grid.components
        if components is None or components.is_empty:
            return
        low = np.log2(20.0)
        high = np.log2(self.max_frequency)
        peak = float(components.amplitudes.max()) or 1.0
        for freq, amp in zip(components.frequencies, components.amplitudes):
            if not 20.0 <= freq <= self.max_frequency:
                continue
            x = int((np.log2(freq) - low) / (high - low) * (self.width - 1))
            bar = int(height * amp / peak)
            pygame.draw.line(self.screen, self.spectrum_color, (x, top + height), (x, top + height - bar), 2)

    def run(self, should_continue: Callable[[], bool] = lambda: True, duration_secs: Optional[float] = None):
        """Run the display loop until the window is closed.

        Args:
            should_continue: Polled every tick; the loop ends when it returns False
            duration_secs: Optional time limit in seconds
        """
        if not self.initialized:
            self.init_screen()

        logger.info("Starting display loop")
        end_time = None if duration_secs is None else time.time() + duration_secs

        while self._open and should_continue():
            for event in pygame.event.get():
                if event.type == pygame.QUIT or (
                    event.type == pygame.KEYDOWN and event.key in (pygame.K_ESCAPE, pygame.K_q)
                ):
                    self._open = False

            grid, _ = self._grids.take(timeout=0)
            if grid is not None:
                self._grid = grid
                self.update_display(grid)

            if end_time is not None and time.time() >= end_time:
                break
            self.clock.tick(self.fps)

        logger.info("Display loop ended")
        self.cleanup()

    def cleanup(self):
        """Clean up Pygame resources"""
        if self.initialized:
            logger.debug("Cleaning up Pygame resources")
            try:
                pygame.quit()
            except Exception as e:
                logger.error(f"Error during Pygame cleanup: {e}")
            self.initialized = False
