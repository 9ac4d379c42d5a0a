"""Virtual machine instruction set: opcodes, argument modes and encoding.

Instructions are 32-bit unsigned words.  The opcode takes the low 6 bits,
followed by A (8 bits), C (9 bits) and B (9 bits).  Bx is B and C taken
together (18 bits) and sBx is Bx read in excess-K notation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

SIZE_C = 9
SIZE_B = 9
SIZE_BX = SIZE_C + SIZE_B
SIZE_A = 8
SIZE_OP = 6

POS_OP = 0
POS_A = POS_OP + SIZE_OP
POS_C = POS_A + SIZE_A
POS_B = POS_C + SIZE_C
POS_BX = POS_C

MAXARG_BX = (1 << SIZE_BX) - 1
MAXARG_SBX = MAXARG_BX >> 1
MAXARG_A = (1 << SIZE_A) - 1
MAXARG_B = (1 << SIZE_B) - 1
MAXARG_C = (1 << SIZE_C) - 1

#: Bit that marks an RK operand as a constant index.
BITRK = 1 << (SIZE_B - 1)
MAXINDEXRK = BITRK - 1

#: Invalid register that still fits in 8 bits.
NO_REG = MAXARG_A

#: Number of list items to accumulate before a SETLIST instruction.
LFIELDS_PER_FLUSH = 50

_WORD_MASK = 0xFFFFFFFF


def _mask(size: int) -> int:
    return (1 << size) - 1


class OpMode(enum.IntEnum):
    """Basic instruction formats."""

    ABC = 0
    ABX = 1
    ASBX = 2


class OpArgMask(enum.IntEnum):
    """How an instruction uses its B or C argument."""

    N = 0  # not used
    U = 1  # used
    R = 2  # register or jump offset
    K = 3  # constant or register/constant


class OpCode(enum.IntEnum):
    """Virtual machine opcodes, in encoding order."""

    MOVE = 0
    LOADK = 1
    LOADBOOL = 2
    LOADNIL = 3
    GETUPVAL = 4
    GETGLOBAL = 5
    GETTABLE = 6
    SETGLOBAL = 7
    SETUPVAL = 8
    SETTABLE = 9
    NEWTABLE = 10
    SELF = 11
    ADD = 12
    SUB = 13
    MUL = 14
    DIV = 15
    MOD = 16
    POW = 17
    UNM = 18
    NOT = 19
    LEN = 20
    CONCAT = 21
    JMP = 22
    EQ = 23
    LT = 24
    LE = 25
    TEST = 26
    TESTSET = 27
    CALL = 28
    TAILCALL = 29
    RETURN = 30
    FORLOOP = 31
    FORPREP = 32
    TFORLOOP = 33
    SETLIST = 34
    CLOSE = 35
    CLOSURE = 36
    VARARG = 37


NUM_OPCODES = len(OpCode)

#: Opcode names, indexed by opcode number.
OPNAMES = tuple(op.name for op in OpCode)

_N, _U, _R, _K = OpArgMask.N, OpArgMask.U, OpArgMask.R, OpArgMask.K
_ABC, _ABX, _ASBX = OpMode.ABC, OpMode.ABX, OpMode.ASBX

# test flag, sets-A flag, B mode, C mode, format
_PROPERTIES = {
    OpCode.MOVE: (0, 1, _R, _N, _ABC),
    OpCode.LOADK: (0, 1, _K, _N, _ABX),
    OpCode.LOADBOOL: (0, 1, _U, _U, _ABC),
    OpCode.LOADNIL: (0, 1, _R, _N, _ABC),
    OpCode.GETUPVAL: (0, 1, _U, _N, _ABC),
    OpCode.GETGLOBAL: (0, 1, _K, _N, _ABX),
    OpCode.GETTABLE: (0, 1, _R, _K, _ABC),
    OpCode.SETGLOBAL: (0, 0, _K, _N, _ABX),
    OpCode.SETUPVAL: (0, 0, _U, _N, _ABC),
    OpCode.SETTABLE: (0, 0, _K, _K, _ABC),
    OpCode.NEWTABLE: (0, 1, _U, _U, _ABC),
    OpCode.SELF: (0, 1, _R, _K, _ABC),
    OpCode.ADD: (0, 1, _K, _K, _ABC),
    OpCode.SUB: (0, 1, _K, _K, _ABC),
    OpCode.MUL: (0, 1, _K, _K, _ABC),
    OpCode.DIV: (0, 1, _K, _K, _ABC),
    OpCode.MOD: (0, 1, _K, _K, _ABC),
    OpCode.POW: (0, 1, _K, _K, _ABC),
    OpCode.UNM: (0, 1, _R, _N, _ABC),
    OpCode.NOT: (0, 1, _R, _N, _ABC),
    OpCode.LEN: (0, 1, _R, _N, _ABC),
    OpCode.CONCAT: (0, 1, _R, _R, _ABC),
    OpCode.JMP: (0, 0, _R, _N, _ASBX),
    OpCode.EQ: (1, 0, _K, _K, _ABC),
    OpCode.LT: (1, 0, _K, _K, _ABC),
    OpCode.LE: (1, 0, _K, _K, _ABC),
    OpCode.TEST: (1, 1, _R, _U, _ABC),
    OpCode.TESTSET: (1, 1, _R, _U, _ABC),
    OpCode.CALL: (0, 1, _U, _U, _ABC),
    OpCode.TAILCALL: (0, 1, _U, _U, _ABC),
    OpCode.RETURN: (0, 0, _U, _N, _ABC),
    OpCode.FORLOOP: (0, 1, _R, _N, _ASBX),
    OpCode.FORPREP: (0, 1, _R, _N, _ASBX),
    OpCode.TFORLOOP: (1, 0, _N, _U, _ABC),
    OpCode.SETLIST: (0, 0, _U, _U, _ABC),
    OpCode.CLOSE: (0, 0, _N, _N, _ABC),
    OpCode.CLOSURE: (0, 1, _U, _N, _ABX),
    OpCode.VARARG: (0, 1, _U, _N, _ABC),
}


def _pack(t: int, a: int, b: int, c: int, m: int) -> int:
    return (t << 7) | (a << 6) | (b << 4) | (c << 2) | m


#: Packed property byte of every opcode: bits 0-1 format, 2-3 C mode,
#: 4-5 B mode, bit 6 sets register A, bit 7 is a test.
OPMODES = tuple(_pack(*_PROPERTIES[op]) for op in OpCode)


def _check(name: str, value: int, limit: int) -> int:
    value = int(value)
    if not 0 <= value <= limit:
        raise ValueError(f"argument {name} out of range: {value}")
    return value


def _opcode(op: int) -> OpCode:
    try:
        return OpCode(op)
    except ValueError:
        raise ValueError(f"invalid opcode: {op}") from None


def create_abc(op: int, a: int, b: int, c: int) -> int:
    """Encode an instruction in the A B C format."""
    return (
        (_opcode(op) << POS_OP)
        | (_check("A", a, MAXARG_A) << POS_A)
        | (_check("B", b, MAXARG_B) << POS_B)
        | (_check("C", c, MAXARG_C) << POS_C)
    )


def create_abx(op: int, a: int, bx: int) -> int:
    """Encode an instruction in the A Bx format."""
    return (
        (_opcode(op) << POS_OP)
        | (_check("A", a, MAXARG_A) << POS_A)
        | (_check("Bx", bx, MAXARG_BX) << POS_BX)
    )


def create_asbx(op: int, a: int, sbx: int) -> int:
    """Encode an instruction in the A sBx format."""
    sbx = int(sbx)
    if not -MAXARG_SBX <= sbx <= MAXARG_BX - MAXARG_SBX:
        raise ValueError(f"argument sBx out of range: {sbx}")
    return create_abx(op, a, sbx + MAXARG_SBX)


def _get(word: int, pos: int, size: int) -> int:
    return (word >> pos) & _mask(size)


def _set(word: int, value: int, pos: int, size: int) -> int:
    field = _mask(size) << pos
    return ((word & ~field) | ((int(value) << pos) & field)) & _WORD_MASK


def get_opcode(word: int) -> OpCode:
    """Opcode of an encoded instruction."""
    return _opcode(_get(word, POS_OP, SIZE_OP))


def get_a(word: int) -> int:
    """Argument A of an encoded instruction."""
    return _get(word, POS_A, SIZE_A)


def get_b(word: int) -> int:
    """Argument B of an encoded instruction."""
    return _get(word, POS_B, SIZE_B)


def get_c(word: int) -> int:
    """Argument C of an encoded instruction."""
    return _get(word, POS_C, SIZE_C)


def get_bx(word: int) -> int:
    """Argument Bx of an encoded instruction."""
    return _get(word, POS_BX, SIZE_BX)


def get_sbx(word: int) -> int:
    """Signed argument sBx of an encoded instruction."""
    return get_bx(word) - MAXARG_SBX


def set_opcode(word: int, op: int) -> int:
    """Return ``word`` with its opcode replaced."""
    return _set(word, _opcode(op), POS_OP, SIZE_OP)


def set_a(word: int, value: int) -> int:
    """Return ``word`` with argument A replaced (masked to its width)."""
    return _set(word, value, POS_A, SIZE_A)


def set_b(word: int, value: int) -> int:
    """Return ``word`` with argument B replaced (masked to its width)."""
    return _set(word, value, POS_B, SIZE_B)


def set_c(word: int, value: int) -> int:
    """Return ``word`` with argument C replaced (masked to its width)."""
    return _set(word, value, POS_C, SIZE_C)


def set_bx(word: int, value: int) -> int:
    """Return ``word`` with argument Bx replaced (masked to its width)."""
    return _set(word, value, POS_BX, SIZE_BX)


def set_sbx(word: int, value: int) -> int:
    """Return ``word`` with signed argument sBx replaced."""
    return set_bx(word, int(value) + MAXARG_SBX)


def is_k(x: int) -> bool:
    """True when an RK operand refers to a constant."""
    return bool(x & BITRK)


def index_k(r: int) -> int:
    """Constant index held in an RK operand."""
    return int(r) & ~BITRK


def rk_as_k(x: int) -> int:
    """Encode a constant index as an RK operand."""
    return int(x) | BITRK


def op_mode(op: int) -> OpMode:
    """Instruction format of an opcode."""
    return OpMode(OPMODES[_opcode(op)] & 3)


def b_mode(op: int) -> OpArgMask:
    """How an opcode uses argument B."""
    return OpArgMask((OPMODES[_opcode(op)] >> 4) & 3)


def c_mode(op: int) -> OpArgMask:
    """How an opcode uses argument C."""
    return OpArgMask((OPMODES[_opcode(op)] >> 2) & 3)


def sets_a(op: int) -> bool:
    """True when an opcode writes register A."""
    return bool(OPMODES[_opcode(op)] & (1 << 6))


def is_test(op: int) -> bool:
    """True when an opcode is a test (the next instruction is a jump)."""
    return bool(OPMODES[_opcode(op)] & (1 << 7))


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction: opcode with its A, B and C fields.

    For the Bx and sBx formats, B and C hold the high and low parts of Bx;
    read them through :attr:`bx` and :attr:`sbx`.
    """

    op: OpCode
    a: int = 0
    b: int = 0
    c: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "op", _opcode(self.op))
        object.__setattr__(self, "a", _check("A", self.a, MAXARG_A))
        object.__setattr__(self, "b", _check("B", self.b, MAXARG_B))
        object.__setattr__(self, "c", _check("C", self.c, MAXARG_C))

    @property
    def mode(self) -> OpMode:
        """Instruction format of this instruction's opcode."""
        return op_mode(self.op)

    @property
    def bx(self) -> int:
        """The Bx argument (B and C together)."""
        return (self.b << SIZE_C) | self.c

    @property
    def sbx(self) -> int:
        """The signed sBx argument."""
        return self.bx - MAXARG_SBX

    def encode(self) -> int:
        """Encode as a 32-bit instruction word."""
        return create_abc(self.op, self.a, self.b, self.c)

    @classmethod
    def decode(cls, word: int) -> "Instruction":
        """Decode a 32-bit instruction word."""
        word = int(word)
        if not 0 <= word <= _WORD_MASK:
            raise ValueError(f"instruction word out of range: {word}")
        return cls(get_opcode(word), get_a(word), get_b(word), get_c(word))

    def __str__(self) -> str:
        mode = self.mode
        if mode is OpMode.ABX:
            return f"{self.op.name} {self.a} {self.bx}"
        if mode is OpMode.ASBX:
            return f"{self.op.name} {self.a} {self.sbx}"
        return f"{self.op.name} {self.a} {self.b} {self.c}"