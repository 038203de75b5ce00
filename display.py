"""
CHIP-8 Display / Host Loop
===========================
Presents the machine's 64×32 framebuffer in a pygame window, feeds the
keyboard into the hex keypad, gates the buzzer, and paces everything to
a fixed frame rate.  The window loop *is* the host loop: the machine
only ever advances from here, one frame per iteration.

Per frame:
    poll events → set keys → vm.run_frame()
    → present if redraw pending → tone on/off → clock.tick(fps)

Keyboard layout (left: PC keys, right: CHIP-8 keypad):

    1 2 3 4        1 2 3 C
    Q W E R   →    4 5 6 D
    A S D F        7 8 9 E
    Z X C V        A 0 B F

Usage (programmatic):
    from display import Chip8Display
    disp = Chip8Display(vm, scale=12, tone=SquareWaveTone())
    disp.run()                # returns when the window is closed

    from display import HeadlessDisplay
    disp = HeadlessDisplay(vm)
    disp.run(600)             # ten seconds of emulated time, no window
    print(disp.render_text())

Usage (CLI):
    python cli.py game.ch8 --scale 12
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import numpy as np

from devices import SCREEN_WIDTH, SCREEN_HEIGHT

if TYPE_CHECKING:
    from chip8 import Chip8
    from audio import SquareWaveTone

FRAME_RATE    = 60
DEFAULT_SCALE = 12
TITLE         = "CHIP-8 Interpreter"

FG_COLOR = (255, 255, 255)
BG_COLOR = (0, 0, 0)

# pygame key name → keypad index
KEY_MAP = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}


def keycode_map(pygame) -> dict[int, int]:
    """Resolve KEY_MAP names to pygame key codes."""
    return {getattr(pygame, "K_" + name): idx for name, idx in KEY_MAP.items()}


def framebuffer_rgb(pixels: bytes, fg=FG_COLOR, bg=BG_COLOR) -> np.ndarray:
    """Convert a row-major 0/1 framebuffer to a (w, h, 3) uint8 array.

    The (w, h) axis order is what pygame.surfarray expects.
    """
    bits = np.frombuffer(pixels, dtype=np.uint8).reshape(SCREEN_HEIGHT,
                                                         SCREEN_WIDTH)
    rgb = np.where(bits[:, :, np.newaxis] != 0,
                   np.array(fg, dtype=np.uint8),
                   np.array(bg, dtype=np.uint8))
    return rgb.transpose(1, 0, 2)


def render_text(pixels: bytes, on: str = "#", off: str = ".") -> str:
    """Render a framebuffer as SCREEN_HEIGHT lines of text."""
    lines = []
    for y in range(SCREEN_HEIGHT):
        row = pixels[y * SCREEN_WIDTH:(y + 1) * SCREEN_WIDTH]
        lines.append("".join(on if p else off for p in row))
    return "\n".join(lines)


# ── Windowed host ─────────────────────────────────────────────────────


class Chip8Display:
    """pygame window driving a Chip8 at a fixed frame rate."""

    def __init__(self, vm: "Chip8", scale: int = DEFAULT_SCALE,
                 fps: int = FRAME_RATE, tone: Optional["SquareWaveTone"] = None,
                 title: str = TITLE):
        self.vm = vm
        self.scale = max(1, scale)
        self.fps = fps
        self.tone = tone
        self.title = title
        self.running = False
        self._keycodes: dict[int, int] = {}

    def handle_event(self, pygame, event):
        """Apply one pygame event to the machine / loop state."""
        if event.type == pygame.QUIT:
            self.running = False
        elif event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                self.running = False
                return
            key = self._keycodes.get(event.key)
            if key is not None:
                self.vm.set_key(key, True)
        elif event.type == pygame.KEYUP:
            key = self._keycodes.get(event.key)
            if key is not None:
                self.vm.set_key(key, False)

    def run(self, max_frames: Optional[int] = None) -> int:
        """Main loop.  Returns the number of frames run."""
        import pygame

        self._keycodes = keycode_map(pygame)
        if self.tone is not None:
            self.tone.pre_init()
        pygame.init()
        pygame.display.set_caption(self.title)
        screen = pygame.display.set_mode((SCREEN_WIDTH * self.scale,
                                          SCREEN_HEIGHT * self.scale))
        surface = pygame.Surface((SCREEN_WIDTH, SCREEN_HEIGHT))
        clock = pygame.time.Clock()

        screen.fill(BG_COLOR)
        pygame.display.flip()

        if self.tone is not None:
            self.tone.start()

        frames = 0
        self.running = True
        try:
            while self.running:
                for event in pygame.event.get():
                    self.handle_event(pygame, event)
                if not self.running:
                    break

                self.vm.run_frame()
                frames += 1

                if self.vm.needs_redraw:
                    pygame.surfarray.blit_array(
                        surface, framebuffer_rgb(self.vm.framebuffer()))
                    pygame.transform.scale(surface, screen.get_size(), screen)
                    pygame.display.flip()
                    self.vm.clear_redraw()

                if self.tone is not None:
                    self.tone.set_active(self.vm.sound_active)

                clock.tick(self.fps)
                if max_frames is not None and frames >= max_frames:
                    break
        finally:
            self.running = False
            if self.tone is not None:
                self.tone.stop()
            pygame.quit()
        return frames


# ── Headless host ─────────────────────────────────────────────────────


class HeadlessDisplay:
    """Windowless host loop that records framebuffer snapshots.

    Runs the same per-frame sequence as Chip8Display without pacing:
    every consumed redraw is appended to ``snapshots`` and every frame
    with the buzzer on is counted in ``sound_frames``.
    """

    def __init__(self, vm: "Chip8"):
        self.vm = vm
        self.snapshots: list[bytes] = []
        self.sound_frames = 0

    def frame(self):
        self.vm.run_frame()
        if self.vm.needs_redraw:
            self.snapshots.append(self.vm.framebuffer())
            self.vm.clear_redraw()
        if self.vm.sound_active:
            self.sound_frames += 1

    def run(self, frames: int):
        for _ in range(frames):
            self.frame()

    def render_text(self) -> str:
        return render_text(self.vm.framebuffer())
