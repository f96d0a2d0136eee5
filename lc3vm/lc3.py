"""
The LC-3 virtual machine: memory, registers, the fetch-decode-execute
loop and the trap routines that stand in for the LC-3 operating system.

Images are loaded as big-endian words, the first word giving the origin.
Console I/O goes through a console object (see lc3vm.console), so the
machine never talks to the terminal directly.
"""

from array import array
import logging
import sys

log = logging.getLogger(__name__)

MEMORY_SIZE = 1 << 16

# condition flags
FL_POS = 1 << 0
FL_ZRO = 1 << 1
FL_NEG = 1 << 2

# memory mapped registers
MR_KBSR = 0xFE00 # keyboard status
MR_KBDR = 0xFE02 # keyboard data

# trap vectors
TRAP_GETC = 0x20
TRAP_OUT = 0x21
TRAP_PUTS = 0x22
TRAP_IN = 0x23
TRAP_PUTSP = 0x24
TRAP_HALT = 0x25


class LC3Error(Exception):
    """Base class of every fatal condition raised by the machine."""


class LoadError(LC3Error):
    def __init__(self, name, message):
        self.name = name
        LC3Error.__init__(self, "failed to load image %s: %s" % (name, message))


class BadOpcodeError(LC3Error):
    def __init__(self, pc, instruction):
        self.pc = pc
        self.instruction = instruction
        self.opcode = instruction >> 12
        LC3Error.__init__(self, "bad opcode %s (instruction %s) at %s" % (
            lc_hex(self.opcode), lc_hex(instruction), lc_hex(pc)))


class BadTrapError(LC3Error):
    def __init__(self, pc, vector):
        self.pc = pc
        self.vector = vector
        LC3Error.__init__(self, "invalid TRAP vector %s at %s" % (
            lc_hex(vector), lc_hex(pc)))


class InputClosedError(LC3Error):
    """The console has no more characters to give."""


def lc_hex(h):
    """ Format the value in the form xFFFF """
    return 'x%04X' % lc_bin(h)

def lc_bin(v):
    """ Truncate any extra bits """
    return v & 0xFFFF

def lc_int(v):
    """ The signed value of a 16-bit word """
    if v & (1 << 15):
        return lc_bin(v) - (1 << 16)
    return lc_bin(v)

def sign_extend(value, bit_count):
    """
    Widen the two's complement number held in the low bit_count bits of
    value to a 16-bit word, copying the sign bit into every higher bit.
    """
    value &= (1 << bit_count) - 1
    if value & (1 << (bit_count - 1)):
        value |= 0xFFFF << bit_count
    return lc_bin(value)

def flag_for(value):
    """ The condition flag describing a 16-bit result """
    if lc_bin(value) == 0:
        return FL_ZRO
    elif value & (1 << 15):
        return FL_NEG
    return FL_POS


class LC3(object):
    """
    The LC3 Computer. Holds the memory and register file and executes
    whatever words it finds at the PC.
    """
    PC_START = 0x3000

    mnemonic = {
        0b0000: "BR",
        0b0001: "ADD",
        0b0010: "LD",
        0b0011: "ST",
        0b0100: "JSR",
        0b0101: "AND",
        0b0110: "LDR",
        0b0111: "STR",
        0b1000: "RTI",
        0b1001: "NOT",
        0b1010: "LDI",
        0b1011: "STI",
        0b1100: "JMP",
        0b1101: "RES",
        0b1110: "LEA",
        0b1111: "TRAP",
    }
    trap_names = {
        TRAP_GETC: "GETC",
        TRAP_OUT: "OUT",
        TRAP_PUTS: "PUTS",
        TRAP_IN: "IN",
        TRAP_PUTSP: "PUTSP",
        TRAP_HALT: "HALT",
    }
    in_prompt = "Enter a character: "

    def __init__(self, kernel=None, console=None, on_shutdown=None):
        self.kernel = kernel
        self.console = console
        self.on_shutdown = on_shutdown
        self.trace = False
        # Every opcode value has an entry; RTI and the reserved
        # opcode are fatal.
        self.apply = {
            0b0000: self.BR,
            0b0001: self.ADD,
            0b0010: self.LD,
            0b0011: self.ST,
            0b0100: self.JSR,
            0b0101: self.AND,
            0b0110: self.LDR,
            0b0111: self.STR,
            0b1000: self.bad_opcode, # RTI
            0b1001: self.NOT,
            0b1010: self.LDI,
            0b1011: self.STI,
            0b1100: self.JMP, # and RET
            0b1101: self.bad_opcode, # reserved
            0b1110: self.LEA,
            0b1111: self.TRAP,
        }
        self.traps = {
            TRAP_GETC: self.trap_getc,
            TRAP_OUT: self.trap_out,
            TRAP_PUTS: self.trap_puts,
            TRAP_IN: self.trap_in,
            TRAP_PUTSP: self.trap_putsp,
            TRAP_HALT: self.trap_halt,
        }
        self.initialize()

    def initialize(self):
        self.running = False
        self.instruction_count = 0
        self.reset_memory()
        self.reset_registers()

    def reset_memory(self):
        self.memory = array('H', [0] * MEMORY_SIZE)
        self.keypress = None

    def reset_registers(self):
        self.register = [0] * 8
        self.cond = FL_ZRO
        self.pc = self.PC_START

    #### Register file

    def get_pc(self):
        return self.pc

    def set_pc(self, value):
        self.pc = lc_bin(value)

    def increment_pc(self, value=1):
        self.set_pc(self.get_pc() + value)

    def get_register(self, position):
        return self.register[position]

    def set_register(self, position, value):
        self.register[position] = lc_bin(value)

    def update_flags(self, position):
        self.cond = flag_for(self.get_register(position))

    def get_nzp(self):
        return (int(self.cond == FL_NEG),
                int(self.cond == FL_ZRO),
                int(self.cond == FL_POS))

    #### Memory, with the keyboard registers intercepted

    def get_memory(self, location):
        location = lc_bin(location)
        if location == MR_KBSR:
            return 1 << 15 if self.poll_keyboard() else 0
        elif location == MR_KBDR:
            self.poll_keyboard()
            value, self.keypress = self.keypress, None
            return (value or 0) & 0xFF
        return self.memory[location]

    def set_memory(self, location, value):
        location = lc_bin(location)
        if location in (MR_KBSR, MR_KBDR):
            log.debug("ignoring write of %s to keyboard register %s",
                      lc_hex(value), lc_hex(location))
            return
        self.memory[location] = lc_bin(value)

    def poll_keyboard(self):
        """
        Latch one character from the console if none is pending and one
        is ready. A pending keypress is never overwritten here.
        """
        if (self.keypress is None and self.console is not None and
                self.console.input_available()):
            self.keypress = self.console.read_one_char()
        return self.keypress is not None

    #### Images

    def load_image(self, stream, name=None):
        """
        Place a big-endian image in memory. Returns (origin, word count).
        """
        if name is None:
            name = getattr(stream, "name", "<stream>")
        data = stream.read()
        if len(data) < 2:
            raise LoadError(name, "image is empty")
        if len(data) % 2:
            raise LoadError(name, "image is truncated mid-word")
        words = array('H')
        words.frombytes(data)
        if sys.byteorder == "little":
            words.byteswap()
        origin = words[0]
        count = len(words) - 1
        if origin + count > MEMORY_SIZE:
            raise LoadError(name, "%d words at %s run past xFFFF" % (
                count, lc_hex(origin)))
        self.memory[origin:origin + count] = words[1:]
        log.info("loaded %s: %d words at %s", name, count, lc_hex(origin))
        return origin, count

    def load_image_file(self, filename):
        try:
            with open(filename, "rb") as fp:
                return self.load_image(fp, filename)
        except OSError as exc:
            raise LoadError(filename, exc.strerror or str(exc))

    #### Reporting

    def Print(self, *args, end="\n"):
        if self.kernel:
            self.kernel.Print(*args, end=end)
        else:
            print(*args, end=end)

    def Error(self, string):
        if self.kernel:
            self.kernel.Error(string)
        else:
            sys.stderr.write(string)

    def shutdown(self):
        if self.on_shutdown is not None:
            self.on_shutdown()

    #### Execution

    def run(self):
        self.running = True
        try:
            while self.running:
                self.step()
        except LC3Error as exc:
            self.running = False
            log.debug("%s after %d instructions", exc, self.instruction_count)
            self.shutdown()
            raise

    def step(self):
        pc = self.get_pc()
        instruction = self.get_memory(pc)
        self.increment_pc()
        self.instruction_count += 1
        if self.trace:
            log.debug("(%s) %s (PC*: %s) [%s]", self.instruction_count,
                      self.format_instruction(instruction, pc),
                      lc_hex(self.get_pc()), lc_hex(instruction))
        self.apply[instruction >> 12](instruction)

    def bad_opcode(self, instruction):
        raise BadOpcodeError(lc_bin(self.get_pc() - 1), instruction)

    def BR(self, instruction):
        nzp = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        if nzp & self.cond:
            self.increment_pc(sign_extend(pc_offset9, 9))

    def ADD(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if instruction & 0b0000000000100000:
            operand = sign_extend(instruction & 0b0000000000011111, 5)
        else:
            operand = self.get_register(instruction & 0b0000000000000111)
        self.set_register(dst, self.get_register(sr1) + operand)
        self.update_flags(dst)

    def AND(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if instruction & 0b0000000000100000:
            operand = sign_extend(instruction & 0b0000000000011111, 5)
        else:
            operand = self.get_register(instruction & 0b0000000000000111)
        self.set_register(dst, self.get_register(sr1) & operand)
        self.update_flags(dst)

    def NOT(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        src = (instruction & 0b0000000111000000) >> 6
        self.set_register(dst, ~self.get_register(src))
        self.update_flags(dst)

    def JMP(self, instruction):
        base = (instruction & 0b0000000111000000) >> 6
        self.set_pc(self.get_register(base))

    def JSR(self, instruction):
        temp = self.get_pc()
        if instruction & 0b0000100000000000: # JSR
            self.increment_pc(sign_extend(instruction & 0b0000011111111111, 11))
        else:                                # JSRR
            base = (instruction & 0b0000000111000000) >> 6
            self.set_pc(self.get_register(base))
        self.set_register(7, temp)

    def pc_relative(self, instruction):
        return lc_bin(self.get_pc() + sign_extend(instruction & 0b0000000111111111, 9))

    def base_relative(self, instruction):
        base = (instruction & 0b0000000111000000) >> 6
        return lc_bin(self.get_register(base) +
                      sign_extend(instruction & 0b0000000000111111, 6))

    def LD(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        self.set_register(dst, self.get_memory(self.pc_relative(instruction)))
        self.update_flags(dst)

    def LDI(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pointer = self.get_memory(self.pc_relative(instruction))
        self.set_register(dst, self.get_memory(pointer))
        self.update_flags(dst)

    def LDR(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        self.set_register(dst, self.get_memory(self.base_relative(instruction)))
        self.update_flags(dst)

    def LEA(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        self.set_register(dst, self.pc_relative(instruction))
        self.update_flags(dst)

    def ST(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        self.set_memory(self.pc_relative(instruction), self.get_register(src))

    def STI(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        pointer = self.get_memory(self.pc_relative(instruction))
        self.set_memory(pointer, self.get_register(src))

    def STR(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        self.set_memory(self.base_relative(instruction), self.get_register(src))

    def TRAP(self, instruction):
        vector = instruction & 0b0000000011111111
        if vector not in self.traps:
            raise BadTrapError(lc_bin(self.get_pc() - 1), vector)
        # HALT never returns, so it leaves R7 alone
        if vector != TRAP_HALT:
            self.set_register(7, self.get_pc())
        self.traps[vector]()

    #### Trap routines

    def getc(self):
        return self.console.read_one_char() & 0xFF

    def trap_getc(self):
        self.set_register(0, self.getc())

    def trap_out(self):
        self.console.write_char(self.get_register(0) & 0xFF)
        self.console.flush()

    def trap_puts(self):
        location = self.get_register(0)
        memory = self.get_memory(location)
        while memory != 0:
            self.console.write_char(memory & 0xFF)
            location += 1
            memory = self.get_memory(location)
        self.console.flush()

    def trap_in(self):
        self.write_string(self.in_prompt)
        self.console.flush()
        char = self.getc()
        self.console.write_char(char)
        self.console.flush()
        self.set_register(0, char)

    def trap_putsp(self):
        location = self.get_register(0)
        memory = self.get_memory(location)
        while memory != 0:
            low, high = memory & 0xFF, memory >> 8
            if not low:
                break
            self.console.write_char(low)
            if not high:
                break
            self.console.write_char(high)
            location += 1
            memory = self.get_memory(location)
        self.console.flush()

    def trap_halt(self):
        self.write_string("HALT\n")
        self.console.flush()
        self.running = False

    def write_string(self, string):
        for char in string:
            self.console.write_char(ord(char))

    #### Disassembly, for traces and memory listings

    def format_instruction(self, instruction, location):
        """
        Render the word at location as LC-3 assembly. Offsets are shown
        as the absolute addresses they resolve to.
        """
        opcode = instruction >> 12
        name = self.mnemonic[opcode]
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        target9 = lc_hex(location + 1 + sign_extend(instruction, 9))
        if opcode in (0b0001, 0b0101):
            if instruction & 0b0000000000100000:
                return "%s R%d, R%d, #%d" % (name, dst, sr1,
                                             lc_int(sign_extend(instruction, 5)))
            return "%s R%d, R%d, R%d" % (name, dst, sr1, instruction & 0b111)
        elif opcode == 0b0000:
            flags = "".join(f for f, bit in zip("nzp", (4, 2, 1)) if dst & bit)
            if not flags:
                return "NOP"
            return "BR%s %s" % (flags, target9)
        elif opcode in (0b0010, 0b0011, 0b1010, 0b1011, 0b1110):
            return "%s R%d, %s" % (name, dst, target9)
        elif opcode in (0b0110, 0b0111):
            return "%s R%d, R%d, #%d" % (name, dst, sr1,
                                         lc_int(sign_extend(instruction, 6)))
        elif opcode == 0b1001:
            return "NOT R%d, R%d" % (dst, sr1)
        elif opcode == 0b1100:
            return "RET" if sr1 == 7 else "JMP R%d" % sr1
        elif opcode == 0b0100:
            if instruction & 0b0000100000000000:
                return "JSR %s" % lc_hex(location + 1 + sign_extend(instruction, 11))
            return "JSRR R%d" % sr1
        elif opcode == 0b1111:
            vector = instruction & 0xFF
            return self.trap_names.get(vector, "TRAP %s" % lc_hex(vector))
        return ";; %s %s" % (name, lc_hex(instruction & 0x0FFF))

    def dump_registers(self):
        self.Print("=" * 60)
        self.Print("Registers:")
        self.Print("=" * 60)
        self.Print("PC:", lc_hex(self.get_pc()))
        self.Print(" ".join("%s: %s" % (r, v) for r, v in zip("NZP", self.get_nzp())))
        for row in (range(0, 4), range(4, 8)):
            self.Print(" ".join("R%d: %s" % (key, lc_hex(self.get_register(key)))
                                for key in row))

    def dump(self, start=None, stop=None, disassemble=False):
        """
        List memory from start to stop inclusive, at most 100 words.
        """
        if start is None:
            start = self.PC_START
        if stop is None or stop < start:
            stop = start + 9
        stop = min(stop, start + 99, MEMORY_SIZE - 1)
        for location in range(start, stop + 1):
            value = self.memory[location]
            if disassemble:
                self.Print("%s: %s  %s" % (lc_hex(location), lc_hex(value),
                                           self.format_instruction(value, location)))
            else:
                self.Print("%s: %s" % (lc_hex(location), lc_hex(value)))
