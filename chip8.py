"""
CHIP-8 Virtual Machine
======================
An instruction-level emulator for the classic CHIP-8 interpreter: sixteen
8-bit registers, a 12-bit address space of 4 KiB, a 64×32 monochrome
display, a 16-key hex keypad and two 60 Hz countdown timers.

Every instruction is a 16-bit big-endian word decoded from memory at
run time.  The fetch/decode/execute loop mirrors the original
interpreter: read two bytes at PC, switch on the high nibble, then on
the low nibble(s) for the families that need it.

The host drives the machine one frame at a time:

    vm = Chip8()
    vm.load_glyphs()
    vm.load_rom(data)
    while running:
        vm.set_key(k, pressed)    # for each input event
        vm.run_frame()
        if vm.needs_redraw:
            present(vm.framebuffer())
            vm.clear_redraw()
        tone(vm.sound_active)
"""

from __future__ import annotations
import random
from typing import Optional

from devices import (
    Framebuffer, Keypad, CountdownTimer, SoundTimer,
    SCREEN_WIDTH, SCREEN_HEIGHT,
)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE         = 4096
PROGRAM_START    = 0x200
MAX_ROM_SIZE     = MEM_SIZE - PROGRAM_START   # 3584 bytes
GLYPH_BASE       = 0x000
GLYPH_BYTES      = 5                          # rows per hex glyph
CYCLES_PER_FRAME = 9                          # ~540 Hz at 60 frames/s

MASK8  = 0xFF
MASK16 = 0xFFFF

# PC increments returned by the family executors
STAY    = 0   # jump/call already set PC, or FX0A is still waiting
ADVANCE = 2   # next instruction
SKIP    = 4   # skip over the next instruction

# Built-in 4×5 hexadecimal font, glyphs 0..F, 5 bytes each
GLYPHS = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for emulator-detected faults."""
    pass

class BusFault(Chip8Error):
    """A fetch or an I-relative access fell outside the 4 KiB memory."""

    def __init__(self, addr: int, message: str = ""):
        self.addr = addr
        super().__init__(message or f"Bus fault @ {addr:#06x}")

class RomSizeError(Chip8Error):
    def __init__(self, size: int):
        self.size = size
        super().__init__(f"ROM image is {size} bytes; at most "
                         f"{MAX_ROM_SIZE} fit above {PROGRAM_START:#05x}")


# ---------------------------------------------------------------------------
#  CPU
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 machine state and interpreter."""

    def __init__(self, cycles_per_frame: int = CYCLES_PER_FRAME,
                 rng: Optional[random.Random] = None):
        self.mem = bytearray(MEM_SIZE)

        # 16 × 8-bit general registers; VF doubles as the flag register
        self.v: list[int] = [0] * 16
        self.i: int = 0                  # 16-bit address register
        self.pc: int = PROGRAM_START
        self.stack: list[int] = []       # return addresses, unbounded
        self.opcode: int = 0             # last fetched instruction

        # Devices
        self.fb = Framebuffer()
        self.keypad = Keypad()
        self.delay_timer = CountdownTimer("Delay")
        self.sound_timer = SoundTimer()
        self.devices = [self.fb, self.keypad, self.delay_timer,
                        self.sound_timer]

        self.cycles_per_frame = cycles_per_frame
        self.rng = rng if rng is not None else random.Random()

        self.cycle_count: int = 0
        self.frame_count: int = 0

    # -- Loading --

    def load_glyphs(self):
        """Install the hex font at the bottom of memory."""
        self.mem[GLYPH_BASE:GLYPH_BASE + len(GLYPHS)] = GLYPHS

    def load_rom(self, data: bytes | bytearray):
        """Copy a program image verbatim to PROGRAM_START."""
        if len(data) > MAX_ROM_SIZE:
            raise RomSizeError(len(data))
        self.mem[PROGRAM_START:PROGRAM_START + len(data)] = data

    # -- Memory access --

    def _check_range(self, addr: int, size: int = 1):
        """Raise BusFault unless addr .. addr+size-1 is inside memory."""
        if addr + size > MEM_SIZE:
            raise BusFault(max(addr, MEM_SIZE))

    # -- Host-facing state --

    def framebuffer(self) -> bytes:
        """Row-major 64×32 snapshot, one byte (0/1) per pixel."""
        return self.fb.snapshot()

    def pixel(self, x: int, y: int) -> int:
        return self.fb.get(x, y)

    @property
    def needs_redraw(self) -> bool:
        return self.fb.dirty

    def clear_redraw(self):
        self.fb.dirty = False

    @property
    def sound_active(self) -> bool:
        return self.sound_timer.active

    def set_key(self, key: int, pressed: bool):
        self.keypad.set(key, pressed)

    # -- Fetch --

    def fetch(self) -> int:
        """Read the big-endian instruction word at PC."""
        self._check_range(self.pc, 2)
        return (self.mem[self.pc] << 8) | self.mem[self.pc + 1]

    # =====================================================================
    #  STEP: the core decode/execute loop
    # =====================================================================

    def step(self) -> int:
        """Execute one instruction. Returns the opcode executed."""
        op = self.fetch()
        self.opcode = op
        f = (op >> 12) & 0xF          # family
        x = (op >> 8) & 0xF
        y = (op >> 4) & 0xF

        if   f == 0x0: advance = self._exec_sys(op)
        elif f == 0x1: advance = self._exec_jp(op & 0xFFF)
        elif f == 0x2: advance = self._exec_call(op & 0xFFF)
        elif f == 0x3: advance = self._skip_if(self.v[x] == (op & 0xFF))
        elif f == 0x4: advance = self._skip_if(self.v[x] != (op & 0xFF))
        elif f == 0x5:
            if (op & 0xF) == 0:
                advance = self._skip_if(self.v[x] == self.v[y])
            else:
                advance = ADVANCE
        elif f == 0x6:  # LD Vx, byte
            self.v[x] = op & 0xFF
            advance = ADVANCE
        elif f == 0x7:  # ADD Vx, byte (VF untouched)
            self.v[x] = (self.v[x] + (op & 0xFF)) & MASK8
            advance = ADVANCE
        elif f == 0x8: advance = self._exec_alu(x, y, op & 0xF)
        elif f == 0x9:
            if (op & 0xF) == 0:
                advance = self._skip_if(self.v[x] != self.v[y])
            else:
                advance = ADVANCE
        elif f == 0xA:  # LD I, addr
            self.i = op & 0xFFF
            advance = ADVANCE
        elif f == 0xB:  # JP V0, addr
            self.pc = ((op & 0xFFF) + self.v[0]) & MASK16
            advance = STAY
        elif f == 0xC:  # RND Vx, byte
            self.v[x] = self.rng.randrange(256) & (op & 0xFF)
            advance = ADVANCE
        elif f == 0xD: advance = self._exec_draw(x, y, op & 0xF)
        elif f == 0xE: advance = self._exec_key(x, op & 0xFF)
        else:          advance = self._exec_misc(x, op & 0xFF)

        self.pc = (self.pc + advance) & MASK16
        self.cycle_count += 1
        return op

    # =====================================================================
    #  Frame
    # =====================================================================

    def run_frame(self):
        """Run one instruction burst, then tick the 60 Hz devices."""
        for _ in range(self.cycles_per_frame):
            self.step()
        for dev in self.devices:
            dev.tick(1)
        self.frame_count += 1

    def run(self, frames: int):
        """Run *frames* frames back to back, with no real-time pacing."""
        for _ in range(frames):
            self.run_frame()

    # =====================================================================
    #  Family executors
    # =====================================================================

    def _skip_if(self, cond: bool) -> int:
        return SKIP if cond else ADVANCE

    # -- 0x0: SYS --
    def _exec_sys(self, op: int) -> int:
        if op == 0x00E0:    # CLS
            self.fb.clear()
        elif op == 0x00EE:  # RET
            if self.stack:
                self.pc = self.stack.pop()
        # 0NNN machine-code call: ignored
        return ADVANCE

    # -- 0x1: JP addr --
    def _exec_jp(self, addr: int) -> int:
        self.pc = addr
        return STAY

    # -- 0x2: CALL addr --
    def _exec_call(self, addr: int) -> int:
        self.stack.append(self.pc)
        self.pc = addr
        return STAY

    # -- 0x8: register/register ALU --
    def _exec_alu(self, x: int, y: int, sub: int) -> int:
        vx = self.v[x]
        vy = self.v[y]

        if sub == 0x0:    # LD Vx, Vy
            self.v[x] = vy
        elif sub == 0x1:  # OR
            self.v[x] = vx | vy
        elif sub == 0x2:  # AND
            self.v[x] = vx & vy
        elif sub == 0x3:  # XOR
            self.v[x] = vx ^ vy
        elif sub == 0x4:  # ADD Vx, Vy; VF = carry
            self.v[x] = (vx + vy) & MASK8
            self.v[0xF] = 1 if vx + vy > MASK8 else 0
        elif sub == 0x5:  # SUB Vx, Vy; VF = NOT borrow
            self.v[x] = (vx - vy) & MASK8
            self.v[0xF] = 1 if vx >= vy else 0
        elif sub == 0x6:  # SHR Vx, Vy; VF = bit shifted out
            self.v[0xF] = vy & 1
            self.v[x] = vy >> 1
        elif sub == 0x7:  # SUBN Vx, Vy; VF = NOT borrow
            self.v[x] = (vy - vx) & MASK8
            self.v[0xF] = 1 if vy >= vx else 0
        elif sub == 0xE:  # SHL Vx, Vy; VF = bit shifted out
            self.v[x] = (vy << 1) & MASK8
            self.v[0xF] = (vy >> 7) & 1
        return ADVANCE

    # -- 0xD: DRW Vx, Vy, nibble --
    def _exec_draw(self, x: int, y: int, n: int) -> int:
        col = self.v[x] % SCREEN_WIDTH
        row = self.v[y] % SCREEN_HEIGHT
        rows = min(n, SCREEN_HEIGHT - row)   # bottom edge clips the sprite
        self._check_range(self.i, rows)

        collision = False
        for j in range(rows):
            if self.fb.xor_row(col, row + j, self.mem[self.i + j]):
                collision = True

        self.v[0xF] = 1 if collision else 0
        self.fb.dirty = True
        return ADVANCE

    # -- 0xE: key skips --
    def _exec_key(self, x: int, sub: int) -> int:
        if sub == 0x9E:    # SKP Vx
            return self._skip_if(self.keypad.is_pressed(self.v[x]))
        elif sub == 0xA1:  # SKNP Vx
            return self._skip_if(not self.keypad.is_pressed(self.v[x]))
        return ADVANCE

    # -- 0xF: timers, I, BCD, register block transfer --
    def _exec_misc(self, x: int, sub: int) -> int:
        if sub == 0x07:    # LD Vx, DT
            self.v[x] = self.delay_timer.value
        elif sub == 0x0A:  # LD Vx, K: re-executes until a key is down
            key = self.keypad.first_pressed()
            if key is None:
                return STAY
            self.v[x] = key
        elif sub == 0x15:  # LD DT, Vx
            self.delay_timer.load(self.v[x])
        elif sub == 0x18:  # LD ST, Vx
            self.sound_timer.load(self.v[x])
        elif sub == 0x1E:  # ADD I, Vx
            self.i = (self.i + self.v[x]) & MASK16
        elif sub == 0x29:  # LD F, Vx
            self.i = GLYPH_BASE + self.v[x] * GLYPH_BYTES
        elif sub == 0x33:  # LD B, Vx
            self._check_range(self.i, 3)
            val = self.v[x]
            self.mem[self.i]     = val // 100
            self.mem[self.i + 1] = (val // 10) % 10
            self.mem[self.i + 2] = val % 10
        elif sub == 0x55:  # LD [I], Vx
            self._check_range(self.i, x + 1)
            for j in range(x + 1):
                self.mem[self.i + j] = self.v[j]
            self.i = (self.i + x + 1) & MASK16
        elif sub == 0x65:  # LD Vx, [I]
            self._check_range(self.i, x + 1)
            for j in range(x + 1):
                self.v[j] = self.mem[self.i + j]
            self.i = (self.i + x + 1) & MASK16
        return ADVANCE
