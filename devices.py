"""
CHIP-8 Peripheral / Device Layer
=================================
The small set of devices owned by the virtual machine:

  Framebuffer     64×32 one-bit display surface + redraw-pending flag
  Keypad          16 hexadecimal key flags (0x0 .. 0xF)
  CountdownTimer  8-bit counter decremented once per frame (delay timer)
  SoundTimer      CountdownTimer that also drives the sound-active flag

Devices are ticked once per display frame by chip8.py, never per
instruction.  None of them talk to the host directly; the host reads
their state through the Chip8 accessors.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
#  Geometry
# ---------------------------------------------------------------------------

SCREEN_WIDTH  = 64
SCREEN_HEIGHT = 32
NUM_KEYS      = 16


# ---------------------------------------------------------------------------
#  Device base class
# ---------------------------------------------------------------------------

class Device:
    """Abstract peripheral."""

    def __init__(self, name: str):
        self.name = name

    def tick(self, frames: int = 1):
        """Advance the device by N display frames. Override for timers etc."""
        pass


# ---------------------------------------------------------------------------
#  Framebuffer
# ---------------------------------------------------------------------------
# Pixels are stored row-major, one byte (0 or 1) per pixel:
#   offset = y * SCREEN_WIDTH + x

class Framebuffer(Device):
    """Monochrome 64×32 display surface."""

    def __init__(self, width: int = SCREEN_WIDTH, height: int = SCREEN_HEIGHT):
        super().__init__("Framebuffer")
        self.width = width
        self.height = height
        self.pixels = bytearray(width * height)
        self.dirty: bool = False    # redraw pending

    def clear(self):
        self.pixels[:] = bytes(len(self.pixels))
        self.dirty = True

    def get(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel out of range: ({x}, {y})")
        return self.pixels[y * self.width + x]

    def xor_row(self, x: int, y: int, bits: int) -> bool:
        """XOR one 8-pixel sprite row onto the surface at (x, y).

        Bits are applied MSB first.  Columns past the right edge are
        clipped, not wrapped.  Returns True if any lit pixel was turned
        off.
        """
        collision = False
        base = y * self.width
        for k in range(8):
            col = x + k
            if col >= self.width:
                break
            on = (bits >> (7 - k)) & 1
            if on & self.pixels[base + col]:
                collision = True
            self.pixels[base + col] ^= on
        return collision

    def snapshot(self) -> bytes:
        return bytes(self.pixels)


# ---------------------------------------------------------------------------
#  Keypad
# ---------------------------------------------------------------------------
# Logical layout of the original hex keypad:
#
#   1 2 3 C
#   4 5 6 D
#   7 8 9 E
#   A 0 B F

class Keypad(Device):
    """Sixteen independent key flags, written only by the host."""

    def __init__(self):
        super().__init__("Keypad")
        self.keys: list[bool] = [False] * NUM_KEYS

    def set(self, key: int, pressed: bool):
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"key index out of range: {key!r}")
        self.keys[key] = bool(pressed)

    def is_pressed(self, key: int) -> bool:
        return self.keys[key & 0xF]

    def first_pressed(self) -> int | None:
        """Lowest-numbered key currently held, or None."""
        for key in range(NUM_KEYS):
            if self.keys[key]:
                return key
        return None


# ---------------------------------------------------------------------------
#  Timers
# ---------------------------------------------------------------------------

class CountdownTimer(Device):
    """8-bit counter that decrements toward zero once per frame."""

    def __init__(self, name: str = "Delay"):
        super().__init__(name)
        self.value: int = 0

    def load(self, value: int):
        self.value = value & 0xFF

    def tick(self, frames: int = 1):
        self.value = max(0, self.value - frames)


class SoundTimer(CountdownTimer):
    """Countdown timer whose nonzero state keeps the tone on.

    ``active`` is recomputed on every tick from the value *before* the
    decrement, so loading 1 produces exactly one frame of sound.
    """

    def __init__(self):
        super().__init__("Sound")
        self.active: bool = False

    def tick(self, frames: int = 1):
        self.active = self.value > 0
        super().tick(frames)
