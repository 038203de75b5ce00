"""
CHIP-8 Buzzer
==============
The only sound CHIP-8 can make is a single fixed-pitch tone that is on
while the sound timer is nonzero.  We pre-render a short looping square
wave with numpy, start it once at volume 0, and just flip its volume
each frame, so nothing is regenerated per frame and the channel never
restarts.

Usage:
    tone = SquareWaveTone()
    tone.start()                   # opens pygame.mixer
    ...
    tone.set_active(vm.sound_active)
    ...
    tone.stop()
"""

from __future__ import annotations

import sys

import numpy as np

TONE_HZ      = 220
TONE_VOLUME  = 0.10
SAMPLE_RATE  = 44_100
MIXER_FORMAT = -16        # signed 16-bit
LOOP_SECONDS = 0.1


def square_wave(frequency: float, sample_rate: int, channels: int = 1,
                seconds: float = LOOP_SECONDS) -> np.ndarray:
    """Render a full-scale int16 square wave, shape (n,) or (n, channels)."""
    n = max(1, int(sample_rate * seconds))
    phase = (np.arange(n) * (frequency / sample_rate)) % 1.0
    wave = np.where(phase <= 0.5, 32767, -32767).astype(np.int16)
    if channels > 1:
        wave = np.repeat(wave[:, np.newaxis], channels, axis=1)
    return wave


class SquareWaveTone:
    """Looping square-wave tone gated by the machine's sound flag."""

    def __init__(self, frequency: float = TONE_HZ,
                 volume: float = TONE_VOLUME):
        self.frequency = frequency
        self.volume = volume
        self.enabled = False
        self.playing = False
        self._sound = None

    def pre_init(self):
        """Request 44.1 kHz signed 16-bit mono before pygame.init() opens
        the mixer with its own defaults."""
        import pygame

        pygame.mixer.pre_init(SAMPLE_RATE, MIXER_FORMAT, 1)

    def start(self):
        """Open the mixer and start the (silent) loop.

        A missing audio device is not fatal: the tone is disabled and
        emulation carries on.
        """
        import pygame

        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(SAMPLE_RATE, MIXER_FORMAT, 1)
            rate, fmt, channels = pygame.mixer.get_init()
            if fmt != MIXER_FORMAT:
                print(f"[audio] unsupported mixer format {fmt}; sound disabled",
                      file=sys.stderr)
                return
            buf = square_wave(self.frequency, rate, channels)
            self._sound = pygame.sndarray.make_sound(buf)
            self._sound.set_volume(0.0)
            self._sound.play(loops=-1)
        except pygame.error as e:
            print(f"[audio] mixer unavailable: {e}; sound disabled",
                  file=sys.stderr)
            self._sound = None
            return
        self.enabled = True

    def set_active(self, on: bool):
        if not self.enabled or on == self.playing:
            return
        self._sound.set_volume(self.volume if on else 0.0)
        self.playing = on

    def stop(self):
        if self._sound is not None:
            self._sound.stop()
            self._sound = None
        self.enabled = False
        self.playing = False
