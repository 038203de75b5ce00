#!/usr/bin/env python3
"""
CHIP-8 Interpreter CLI
=======================
Loads a program image and runs it, either in a pygame window (default)
or headless for a fixed number of frames, printing the final screen.

Usage:
  python cli.py ROM [--scale N] [--fps N] [--cycles N] [--seed N]
                    [--mute] [--tone HZ]
  python cli.py ROM --headless [--frames N]
"""

from __future__ import annotations
import argparse
import random
import sys

from chip8 import Chip8, Chip8Error, RomSizeError, CYCLES_PER_FRAME, PROGRAM_START
from display import HeadlessDisplay, DEFAULT_SCALE, FRAME_RATE
from audio import TONE_HZ


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CHIP-8 Interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py pong.ch8\n"
               "  python cli.py pong.ch8 --scale 8 --mute\n"
               "  python cli.py test.ch8 --headless --frames 120\n"
               "\n"
               "Keys: 1234 / QWER / ASDF / ZXCV map to the hex keypad,\n"
               "Esc quits.\n"
    )
    parser.add_argument("rom", type=str,
                        help="Program image (.ch8 / .rom), loaded at 0x200")
    parser.add_argument("--scale", type=int, default=DEFAULT_SCALE, metavar="N",
                        help=f"Pixel scale factor for the window (default: {DEFAULT_SCALE})")
    parser.add_argument("--fps", type=int, default=FRAME_RATE, metavar="N",
                        help=f"Frames per second, 0 = uncapped (default: {FRAME_RATE})")
    parser.add_argument("--cycles", type=int, default=CYCLES_PER_FRAME, metavar="N",
                        help=f"Instructions per frame (default: {CYCLES_PER_FRAME})")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the RND instruction (default: unseeded)")
    parser.add_argument("--mute", action="store_true",
                        help="Disable the buzzer")
    parser.add_argument("--tone", type=float, default=TONE_HZ, metavar="HZ",
                        help=f"Buzzer frequency (default: {TONE_HZ})")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window and print the final screen")
    parser.add_argument("--frames", type=int, default=600, metavar="N",
                        help="Frames to run in headless mode (default: 600)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        with open(args.rom, "rb") as f:
            data = f.read()
    except OSError as e:
        print(f"ERROR: cannot read ROM '{args.rom}': {e.strerror or e}",
              file=sys.stderr)
        return 1

    rng = random.Random(args.seed) if args.seed is not None else None
    vm = Chip8(cycles_per_frame=args.cycles, rng=rng)
    vm.load_glyphs()
    try:
        vm.load_rom(data)
    except RomSizeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    print(f"Loaded {len(data)} bytes from '{args.rom}' at {PROGRAM_START:#05x}")

    try:
        if args.headless:
            disp = HeadlessDisplay(vm)
            disp.run(args.frames)
            print(disp.render_text())
            print(f"[chip8] {vm.frame_count} frames, {vm.cycle_count} cycles, "
                  f"{len(disp.snapshots)} redraws, {disp.sound_frames} sound frames")
        else:
            try:
                from display import Chip8Display
                from audio import SquareWaveTone
                tone = None if args.mute else SquareWaveTone(args.tone)
                disp = Chip8Display(vm, scale=args.scale, fps=args.fps, tone=tone)
                disp.run()
            except ImportError as e:
                print(f"[display] pygame not available: {e}", file=sys.stderr)
                print("[display] Install with: pip install pygame",
                      file=sys.stderr)
                return 1
    except Chip8Error as e:
        print(f"[chip8] {e} (pc={vm.pc:#06x}, opcode={vm.opcode:#06x})",
              file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
