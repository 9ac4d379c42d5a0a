import pytest

from moonlib.opcodes import (
    BITRK,
    MAXARG_A,
    MAXARG_B,
    MAXARG_BX,
    MAXARG_C,
    MAXARG_SBX,
    NUM_OPCODES,
    OPNAMES,
    POS_A,
    Instruction,
    OpArgMask,
    OpCode,
    OpMode,
    b_mode,
    c_mode,
    create_abc,
    create_abx,
    create_asbx,
    get_a,
    get_b,
    get_bx,
    get_c,
    get_opcode,
    get_sbx,
    index_k,
    is_k,
    is_test,
    op_mode,
    rk_as_k,
    set_a,
    set_b,
    set_bx,
    set_c,
    set_sbx,
    sets_a,
)


@pytest.mark.parametrize("op", list(OpCode))
def test_abc_round_trip_every_opcode(op):
    word = create_abc(op, 7, 300, 45)
    assert get_opcode(word) is op
    assert (get_a(word), get_b(word), get_c(word)) == (7, 300, 45)


def test_abc_extremes_round_trip():
    word = create_abc(OpCode.VARARG, MAXARG_A, MAXARG_B, MAXARG_C)
    assert get_opcode(word) is OpCode.VARARG
    assert get_a(word) == MAXARG_A
    assert get_b(word) == MAXARG_B
    assert get_c(word) == MAXARG_C
    assert word < 2**32


def test_a_field_position():
    assert get_a(1 << POS_A) == 1
    assert get_opcode(1 << POS_A) is OpCode.MOVE


def test_abx_round_trip():
    word = create_abx(OpCode.LOADK, 3, MAXARG_BX)
    assert get_opcode(word) is OpCode.LOADK
    assert get_a(word) == 3
    assert get_bx(word) == MAXARG_BX


@pytest.mark.parametrize("sbx", [-MAXARG_SBX, -5, 0, 1, MAXARG_SBX])
def test_asbx_round_trip(sbx):
    word = create_asbx(OpCode.JMP, 0, sbx)
    assert get_sbx(word) == sbx
    assert get_opcode(word) is OpCode.JMP


def test_bx_is_b_and_c_together():
    word = create_abc(OpCode.MOVE, 0, 5, 9)
    assert get_bx(word) == (get_b(word) << 9) | get_c(word)


@pytest.mark.parametrize(
    "args",
    [(OpCode.MOVE, MAXARG_A + 1, 0, 0), (OpCode.MOVE, 0, MAXARG_B + 1, 0),
     (OpCode.MOVE, 0, 0, -1)],
)
def test_create_abc_rejects_out_of_range(args):
    with pytest.raises(ValueError):
        create_abc(*args)


def test_create_abx_rejects_out_of_range():
    with pytest.raises(ValueError):
        create_abx(OpCode.LOADK, 0, MAXARG_BX + 1)


def test_create_asbx_rejects_out_of_range():
    with pytest.raises(ValueError):
        create_asbx(OpCode.JMP, 0, -MAXARG_SBX - 1)


def test_invalid_opcode_rejected():
    with pytest.raises(ValueError):
        create_abc(NUM_OPCODES, 0, 0, 0)
    with pytest.raises(ValueError):
        get_opcode(63)


def test_setters_change_only_their_field():
    word = create_abc(OpCode.ADD, 1, 2, 3)
    changed = set_a(word, 200)
    assert (get_a(changed), get_b(changed), get_c(changed)) == (200, 2, 3)
    changed = set_b(word, 400)
    assert (get_a(changed), get_b(changed), get_c(changed)) == (1, 400, 3)
    changed = set_c(word, 500)
    assert (get_a(changed), get_b(changed), get_c(changed)) == (1, 2, 500)
    assert get_opcode(changed) is OpCode.ADD


def test_setters_mask_to_field_width():
    word = set_b(0, MAXARG_B + 1)
    assert get_b(word) == 0
    assert get_c(word) == 0


def test_set_bx_and_sbx():
    word = create_abx(OpCode.CLOSURE, 4, 0)
    assert get_bx(set_bx(word, 1234)) == 1234
    assert get_a(set_bx(word, 1234)) == 4
    assert get_sbx(set_sbx(word, -77)) == -77


def test_rk_operands():
    rk = rk_as_k(17)
    assert is_k(rk)
    assert index_k(rk) == 17
    assert not is_k(17)
    assert rk == 17 | BITRK


def test_mode_queries():
    assert op_mode(OpCode.LOADK) is OpMode.ABX
    assert op_mode(OpCode.JMP) is OpMode.ASBX
    assert op_mode(OpCode.ADD) is OpMode.ABC
    assert b_mode(OpCode.MOVE) is OpArgMask.R
    assert c_mode(OpCode.MOVE) is OpArgMask.N
    assert b_mode(OpCode.ADD) is OpArgMask.K
    assert c_mode(OpCode.TFORLOOP) is OpArgMask.U


def test_flag_queries():
    assert is_test(OpCode.EQ)
    assert is_test(OpCode.TESTSET)
    assert not is_test(OpCode.CALL)
    assert sets_a(OpCode.MOVE)
    assert not sets_a(OpCode.SETGLOBAL)
    assert not sets_a(OpCode.JMP)


def test_opnames_follow_opcode_order():
    assert len(OPNAMES) == NUM_OPCODES
    for code in range(NUM_OPCODES):
        decoded = get_opcode(create_abc(code, 0, 0, 0))
        assert OPNAMES[code] == decoded.name
    assert OPNAMES[get_opcode(create_abc(0, 0, 0, 0))] == "MOVE"
    assert OPNAMES[get_opcode(create_abc(NUM_OPCODES - 1, 0, 0, 0))] == "VARARG"


def test_instruction_encode_decode_round_trip():
    ins = Instruction(OpCode.CALL, 2, 3, 1)
    word = ins.encode()
    assert Instruction.decode(word) == ins
    assert word == create_abc(OpCode.CALL, 2, 3, 1)


def test_instruction_bx_and_sbx_views():
    word = create_asbx(OpCode.FORLOOP, 1, -12)
    ins = Instruction.decode(word)
    assert ins.sbx == -12
    assert ins.bx == get_bx(word)
    assert ins.mode is OpMode.ASBX
    assert str(ins) == "FORLOOP 1 -12"


def test_instruction_validates_fields():
    with pytest.raises(ValueError):
        Instruction(OpCode.MOVE, MAXARG_A + 1)
    with pytest.raises(ValueError):
        Instruction.decode(2**32)


def test_instruction_accepts_integer_opcode():
    ins = Instruction(int(OpCode.RETURN), 0, 1)
    assert ins.op is OpCode.RETURN
    assert str(ins) == "RETURN 0 1 0"