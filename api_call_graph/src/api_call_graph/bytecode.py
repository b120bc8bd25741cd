"""
Bytecode decoding and disassembly.

`decode()` turns a Code attribute's byte array into Instruction tuples, with
constant pool references already resolved (invocations carry a MethodRef).
`render()` prints a method as a plain-text trace; that text is the fallback
method body whenever the original source can't be found.
"""

import struct
from typing import Iterator, Optional

from api_call_graph.classfile import ConstantPool
from api_call_graph.errors import ClassFormatError
from api_call_graph.models.unit_models import ClassLiteral, ConstantMarker, Instruction, MethodDecl, MethodRef

# --- Opcode table ------------------------------------------------------------
#
# Operand kinds:
#   ""      no operands
#   "s1"    signed byte           "s2"  signed short
#   "u1"    local variable index  "cp1" / "cp2" constant pool index
#   "br2"   16-bit branch offset  "br4" 32-bit branch offset
#   "method" cp2 index of a Methodref (invokevirtual/special/static)
#   anything else is handled by a dedicated decoder below

_OPCODES: dict[int, tuple[str, str]] = {}


def _op(code: int, mnemonic: str, kind: str = ""):
    _OPCODES[code] = (mnemonic, kind)


def _ops(start: int, names: str, kind: str = ""):
    for i, name in enumerate(names.split()):
        _op(start + i, name, kind)


_ops(0x00, "nop aconst_null iconst_m1 iconst_0 iconst_1 iconst_2 iconst_3 iconst_4 iconst_5 "
           "lconst_0 lconst_1 fconst_0 fconst_1 fconst_2 dconst_0 dconst_1")
_op(0x10, "bipush", "s1")
_op(0x11, "sipush", "s2")
_op(0x12, "ldc", "cp1")
_op(0x13, "ldc_w", "cp2")
_op(0x14, "ldc2_w", "cp2")
_ops(0x15, "iload lload fload dload aload", "u1")
_ops(0x1a, " ".join(f"{t}load_{n}" for t in "ilfda" for n in range(4)))
_ops(0x2e, "iaload laload faload daload aaload baload caload saload")
_ops(0x36, "istore lstore fstore dstore astore", "u1")
_ops(0x3b, " ".join(f"{t}store_{n}" for t in "ilfda" for n in range(4)))
_ops(0x4f, "iastore lastore fastore dastore aastore bastore castore sastore "
           "pop pop2 dup dup_x1 dup_x2 dup2 dup2_x1 dup2_x2 swap "
           "iadd ladd fadd dadd isub lsub fsub dsub imul lmul fmul dmul "
           "idiv ldiv fdiv ddiv irem lrem frem drem ineg lneg fneg dneg "
           "ishl lshl ishr lshr iushr lushr iand land ior lor ixor lxor")
_op(0x84, "iinc", "iinc")
_ops(0x85, "i2l i2f i2d l2i l2f l2d f2i f2l f2d d2i d2l d2f i2b i2c i2s "
           "lcmp fcmpl fcmpg dcmpl dcmpg")
_ops(0x99, "ifeq ifne iflt ifge ifgt ifle if_icmpeq if_icmpne if_icmplt if_icmpge "
           "if_icmpgt if_icmple if_acmpeq if_acmpne goto jsr", "br2")
_op(0xa9, "ret", "u1")
_op(0xaa, "tableswitch", "tableswitch")
_op(0xab, "lookupswitch", "lookupswitch")
_ops(0xac, "ireturn lreturn freturn dreturn areturn return")
_ops(0xb2, "getstatic putstatic getfield putfield", "field")
_ops(0xb6, "invokevirtual invokespecial invokestatic", "method")
_op(0xb9, "invokeinterface", "invokeinterface")
_op(0xba, "invokedynamic", "invokedynamic")
_op(0xbb, "new", "class")
_op(0xbc, "newarray", "newarray")
_op(0xbd, "anewarray", "class")
_ops(0xbe, "arraylength athrow")
_ops(0xc0, "checkcast instanceof", "class")
_ops(0xc2, "monitorenter monitorexit")
_op(0xc4, "wide", "wide")
_op(0xc5, "multianewarray", "multianewarray")
_ops(0xc6, "ifnull ifnonnull", "br2")
_ops(0xc8, "goto_w jsr_w", "br4")

INVOKE_MNEMONICS = frozenset({"invokevirtual", "invokespecial", "invokestatic", "invokeinterface"})

_ARRAY_TYPES = {4: "T_BOOLEAN", 5: "T_CHAR", 6: "T_FLOAT", 7: "T_DOUBLE",
                8: "T_BYTE", 9: "T_SHORT", 10: "T_INT", 11: "T_LONG"}


def mnemonic_of(opcode: int) -> str:
    return _OPCODES[opcode][0]


# --- Decoding ----------------------------------------------------------------

def _s4_list(code: bytes, pos: int, count: int) -> tuple:
    try:
        return struct.unpack_from(f">{count}i", code, pos)
    except struct.error as e:
        raise ClassFormatError(f"truncated switch table at offset {pos}") from e


def _decode_one(code: bytes, offset: int, pool: ConstantPool) -> tuple[Instruction, int]:
    """Decodes the instruction at `offset`; returns it and the next offset."""
    opcode = code[offset]
    if opcode not in _OPCODES:
        raise ClassFormatError(f"unknown opcode 0x{opcode:02x} at offset {offset}")
    mnemonic, kind = _OPCODES[opcode]
    pos = offset + 1

    def unpack(fmt: str):
        nonlocal pos
        try:
            values = struct.unpack_from(fmt, code, pos)
        except struct.error as e:
            raise ClassFormatError(f"truncated {mnemonic} at offset {offset}") from e
        pos += struct.calcsize(fmt)
        return values

    if kind == "":
        operands = ()
    elif kind == "s1":
        operands = unpack(">b")
    elif kind == "s2":
        operands = unpack(">h")
    elif kind == "u1":
        operands = unpack(">B")
    elif kind == "cp1":
        operands = (pool.literal(unpack(">B")[0]),)
    elif kind == "cp2":
        operands = (pool.literal(unpack(">H")[0]),)
    elif kind == "br2":
        operands = (offset + unpack(">h")[0],)
    elif kind == "br4":
        operands = (offset + unpack(">i")[0],)
    elif kind == "iinc":
        operands = unpack(">Bb")
    elif kind == "field":
        operands = pool.member_ref(unpack(">H")[0])
    elif kind == "method":
        operands = (pool.method_ref(unpack(">H")[0]),)
    elif kind == "invokeinterface":
        index, _count, _zero = unpack(">HBB")
        operands = (pool.method_ref(index),)
    elif kind == "invokedynamic":
        index, _zero = unpack(">HH")
        operands = pool.invoke_dynamic(index)
    elif kind == "class":
        operands = (pool.class_name(unpack(">H")[0]),)
    elif kind == "newarray":
        atype = unpack(">B")[0]
        operands = (_ARRAY_TYPES.get(atype, str(atype)),)
    elif kind == "multianewarray":
        index, dims = unpack(">HB")
        operands = (pool.class_name(index), dims)
    elif kind == "wide":
        inner = unpack(">B")[0]
        if inner == 0x84:
            index, const = unpack(">Hh")
            operands = (mnemonic_of(inner), index, const)
        else:
            operands = (mnemonic_of(inner), unpack(">H")[0])
    elif kind in ("tableswitch", "lookupswitch"):
        pos += (4 - pos % 4) % 4  # operands are 4-byte aligned relative to the code start
        if kind == "tableswitch":
            default, low, high = _s4_list(code, pos, 3)
            if high < low:
                raise ClassFormatError(f"bad tableswitch bounds at offset {offset}")
            offsets = _s4_list(code, pos + 12, high - low + 1)
            pos += 12 + 4 * len(offsets)
            targets = {low + i: offset + rel for i, rel in enumerate(offsets)}
        else:
            default, npairs = _s4_list(code, pos, 2)
            if npairs < 0:
                raise ClassFormatError(f"bad lookupswitch size at offset {offset}")
            pairs = _s4_list(code, pos + 8, 2 * npairs)
            pos += 8 + 4 * len(pairs)
            targets = {pairs[i]: offset + pairs[i + 1] for i in range(0, len(pairs), 2)}
        operands = (offset + default, targets)
    else:
        raise ClassFormatError(f"unhandled operand kind {kind!r}")

    return Instruction(offset, opcode, mnemonic, tuple(operands)), pos


def decode(code: bytes, pool: ConstantPool) -> Iterator[Instruction]:
    """Yields every instruction of a Code attribute in offset order."""
    offset = 0
    while offset < len(code):
        instruction, offset = _decode_one(code, offset, pool)
        yield instruction


def invoked_method(instruction: Instruction) -> Optional[MethodRef]:
    """The MethodRef of an invocation instruction, or None for anything else."""
    if instruction.mnemonic in INVOKE_MNEMONICS:
        return instruction.operands[0]
    return None


# --- Disassembly -------------------------------------------------------------

def _render_operand(value) -> str:
    if isinstance(value, MethodRef):
        return f"{value.owner}.{value.name} {value.descriptor}" + (" (itf)" if value.is_interface else "")
    if isinstance(value, ClassLiteral):
        return f"{value.descriptor}.class"
    if isinstance(value, ConstantMarker):
        return value.text
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: L{v}" for k, v in sorted(value.items())) + "}"
    return repr(value)


def render_instruction(instruction: Instruction) -> str:
    mnemonic, kind = _OPCODES[instruction.opcode]
    ops = instruction.operands
    if kind in ("br2", "br4"):
        text = f"L{ops[0]}"
    elif kind in ("cp1", "cp2"):
        value = ops[0]
        text = f'"{value}"' if isinstance(value, str) else _render_operand(value)
    elif kind == "field":
        owner, name, descriptor = ops
        text = f"{owner}.{name} : {descriptor}"
    elif kind in ("tableswitch", "lookupswitch"):
        default, targets = ops
        text = f"{_render_operand(targets)} default: L{default}"
    else:
        text = " ".join(_render_operand(op) for op in ops)
    return f"{instruction.offset:>5}: {mnemonic.upper()}" + (f" {text}" if text else "")


def render(method: MethodDecl, pool: ConstantPool) -> str:
    """
    Textual trace of a method's bytecode, one instruction per line.
    Abstract and native methods have no code and render as an empty string.
    """
    if method.code is None:
        return ""
    lines = [render_instruction(ins) for ins in decode(method.code, pool)]
    lines.append(f"MAXSTACK = {method.max_stack}")
    lines.append(f"MAXLOCALS = {method.max_locals}")
    return "\n".join(lines)
