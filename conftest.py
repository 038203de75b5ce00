"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest                 # whole suite
    python -m pytest -m "not sdl"    # skip tests that open pygame

pygame is pointed at SDL's dummy video/audio drivers before any test
module imports it, so the window and mixer paths run without a display
server or sound card.
"""

import os
import sys

import pytest

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "sdl: tests that initialise pygame (dummy SDL drivers)")
