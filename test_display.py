"""
Display / host-loop tests.

Pure helpers (colour conversion, text rendering, key mapping) and the
headless loop run everywhere.  The pygame window and mixer tests are
marked ``sdl`` and rely on the dummy SDL drivers set up in conftest.py.
"""

import random
import unittest
from unittest import mock

import numpy as np
import pygame
import pytest

from audio import SquareWaveTone, SAMPLE_RATE, MIXER_FORMAT
from chip8 import Chip8
from devices import SCREEN_WIDTH, SCREEN_HEIGHT
from display import (
    Chip8Display, HeadlessDisplay, KEY_MAP, FG_COLOR, BG_COLOR,
    framebuffer_rgb, keycode_map, render_text,
)


def make_vm(*words: int) -> Chip8:
    vm = Chip8(rng=random.Random(0))
    vm.load_glyphs()
    vm.load_rom(b"".join(w.to_bytes(2, "big") for w in words))
    return vm


# 200: I = glyph "0"   202: draw at (V0, V1)   204: loop forever
DRAW_ZERO = (0xA000, 0xD015, 0x1204)


class TestFramebufferConversion(unittest.TestCase):
    def test_rgb_shape_and_colours(self):
        pixels = bytearray(SCREEN_WIDTH * SCREEN_HEIGHT)
        pixels[0] = 1                        # (0, 0)
        pixels[2 * SCREEN_WIDTH + 5] = 1     # (5, 2)
        rgb = framebuffer_rgb(bytes(pixels))
        self.assertEqual(rgb.shape, (SCREEN_WIDTH, SCREEN_HEIGHT, 3))
        self.assertEqual(rgb.dtype, np.uint8)
        self.assertEqual(tuple(rgb[0, 0]), FG_COLOR)
        self.assertEqual(tuple(rgb[5, 2]), FG_COLOR)
        self.assertEqual(tuple(rgb[2, 5]), BG_COLOR)
        self.assertEqual(int((rgb != 0).any(axis=2).sum()), 2)

    def test_custom_colours(self):
        pixels = bytes([1]) + bytes(SCREEN_WIDTH * SCREEN_HEIGHT - 1)
        rgb = framebuffer_rgb(pixels, fg=(10, 20, 30), bg=(1, 2, 3))
        self.assertEqual(tuple(rgb[0, 0]), (10, 20, 30))
        self.assertEqual(tuple(rgb[1, 0]), (1, 2, 3))

    def test_render_text(self):
        pixels = bytearray(SCREEN_WIDTH * SCREEN_HEIGHT)
        pixels[SCREEN_WIDTH + 3] = 1
        lines = render_text(bytes(pixels)).split("\n")
        self.assertEqual(len(lines), SCREEN_HEIGHT)
        self.assertTrue(all(len(line) == SCREEN_WIDTH for line in lines))
        self.assertEqual(lines[1][:5], "...#.")
        self.assertEqual(lines[0], "." * SCREEN_WIDTH)


class TestKeyMapping(unittest.TestCase):
    def test_layout_covers_every_key_once(self):
        self.assertEqual(sorted(KEY_MAP.values()), list(range(16)))

    def test_keycodes(self):
        codes = keycode_map(pygame)
        self.assertEqual(len(codes), 16)
        self.assertEqual(codes[pygame.K_1], 0x1)
        self.assertEqual(codes[pygame.K_4], 0xC)
        self.assertEqual(codes[pygame.K_x], 0x0)
        self.assertEqual(codes[pygame.K_v], 0xF)

    def test_handle_event_press_and_release(self):
        vm = make_vm()
        disp = Chip8Display(vm)
        disp._keycodes = keycode_map(pygame)
        disp.running = True

        disp.handle_event(pygame, pygame.event.Event(pygame.KEYDOWN, key=pygame.K_w))
        self.assertTrue(vm.keypad.is_pressed(0x5))
        disp.handle_event(pygame, pygame.event.Event(pygame.KEYUP, key=pygame.K_w))
        self.assertFalse(vm.keypad.is_pressed(0x5))

        disp.handle_event(pygame, pygame.event.Event(pygame.KEYDOWN, key=pygame.K_p))
        self.assertIsNone(vm.keypad.first_pressed())
        self.assertTrue(disp.running)

    def test_escape_and_quit_stop_the_loop(self):
        disp = Chip8Display(make_vm())
        disp.running = True
        disp.handle_event(pygame, pygame.event.Event(pygame.KEYDOWN,
                                                     key=pygame.K_ESCAPE))
        self.assertFalse(disp.running)

        disp.running = True
        disp.handle_event(pygame, pygame.event.Event(pygame.QUIT))
        self.assertFalse(disp.running)


class TestHeadlessDisplay(unittest.TestCase):
    def test_single_redraw_snapshot(self):
        vm = make_vm(*DRAW_ZERO)
        disp = HeadlessDisplay(vm)
        disp.run(3)
        self.assertEqual(vm.frame_count, 3)
        self.assertEqual(len(disp.snapshots), 1)
        self.assertFalse(vm.needs_redraw)
        self.assertEqual(disp.snapshots[0], vm.framebuffer())
        self.assertEqual(disp.render_text().split("\n")[0][:8], "####....")

    def test_sound_frames(self):
        # 200: V0 = 3   202: ST = V0   204: loop
        vm = make_vm(0x6003, 0xF018, 0x1204)
        disp = HeadlessDisplay(vm)
        disp.run(10)
        self.assertEqual(disp.sound_frames, 3)


@pytest.mark.sdl
class TestChip8Display(unittest.TestCase):
    def test_run_fixed_frames(self):
        vm = make_vm(*DRAW_ZERO)
        disp = Chip8Display(vm, scale=2, fps=0, tone=None)
        frames = disp.run(max_frames=3)
        self.assertEqual(frames, 3)
        self.assertEqual(vm.frame_count, 3)
        self.assertFalse(vm.needs_redraw)
        self.assertFalse(disp.running)

    def test_run_drives_real_tone(self):
        # 200: V0 = 16   202: ST = V0   204: loop
        vm = make_vm(0x6010, 0xF018, 0x1204)
        tone = SquareWaveTone()
        calls = []
        gate = tone.set_active

        def record(on):
            gate(on)
            calls.append((on, tone.enabled, tone.playing))

        tone.set_active = record
        with mock.patch.object(pygame.mixer, "pre_init",
                               wraps=pygame.mixer.pre_init) as pre:
            frames = Chip8Display(vm, scale=1, fps=0, tone=tone).run(max_frames=3)

        self.assertEqual(frames, 3)
        pre.assert_called_once_with(SAMPLE_RATE, MIXER_FORMAT, 1)
        self.assertEqual(calls, [(True, True, True)] * 3)
        self.assertTrue(vm.sound_active)
        self.assertFalse(tone.enabled)


if __name__ == "__main__":
    unittest.main()
