"""
Consoles connect the machine's keyboard and trap routines to the outside
world: a raw-mode POSIX terminal, an in-memory string, or a Jupyter
front end.
"""

from collections import deque
import logging
import os
import select
import sys
import termios

from .lc3 import InputClosedError

log = logging.getLogger(__name__)


class Console(object):
    """
    What the machine needs from a console. Subclasses provide the
    character I/O; terminal handling defaults to doing nothing.
    """
    def input_available(self):
        raise NotImplementedError

    def read_one_char(self):
        raise NotImplementedError

    def write_char(self, code):
        raise NotImplementedError

    def flush(self):
        pass

    def disable_input_buffering(self):
        pass

    def restore_input_buffering(self):
        pass


class TerminalConsole(Console):
    """
    stdin in non-canonical, no-echo mode, so that single key presses
    reach the machine as they are typed.
    """
    def __init__(self, stdin=None, stdout=None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        # trap output is raw bytes, one per character code
        self.output = getattr(self.stdout, "buffer", self.stdout)
        self.fd = self.stdin.fileno()
        self.saved_attributes = None

    def disable_input_buffering(self):
        if not os.isatty(self.fd):
            log.debug("stdin is not a terminal, leaving it buffered")
            return
        self.saved_attributes = termios.tcgetattr(self.fd)
        attributes = termios.tcgetattr(self.fd)
        attributes[3] &= ~(termios.ICANON | termios.ECHO)
        termios.tcsetattr(self.fd, termios.TCSANOW, attributes)

    def restore_input_buffering(self):
        # may be called more than once: on a fatal error, on SIGINT
        # and again when the run ends
        if self.saved_attributes is not None:
            termios.tcsetattr(self.fd, termios.TCSANOW, self.saved_attributes)
            self.saved_attributes = None

    def input_available(self):
        readable, _, _ = select.select([self.fd], [], [], 0)
        return bool(readable)

    def read_one_char(self):
        data = os.read(self.fd, 1)
        if not data:
            raise InputClosedError("end of input on stdin")
        return data[0]

    def write_char(self, code):
        self.output.write(bytes([code & 0xFF]))

    def flush(self):
        self.output.flush()


class StringConsole(Console):
    """
    Input taken from a string, output collected in memory.
    """
    def __init__(self, text=""):
        self.input = deque(ord(char) for char in text)
        self.output = []

    def feed(self, text):
        self.input.extend(ord(char) for char in text)

    def input_available(self):
        return bool(self.input)

    def read_one_char(self):
        if not self.input:
            raise InputClosedError("no more input")
        return self.input.popleft()

    def write_char(self, code):
        self.output.append(chr(code))

    def getvalue(self):
        return "".join(self.output)


class KernelConsole(Console):
    """
    Console for the Jupyter kernel: input is requested from the front
    end a line at a time, output is sent when flushed.
    """
    def __init__(self, kernel):
        self.kernel = kernel
        self.char_buffer = []
        self.pending = []

    def input_available(self):
        return len(self.char_buffer) > 0

    def read_one_char(self):
        if len(self.char_buffer) == 0:
            self.flush()
            data = self.kernel.raw_input()
            if data is None:
                raise InputClosedError("input request was cancelled")
            data = data.replace("\\n", "\n")
            if len(data) == 0:
                self.char_buffer = [ord("\n")]
            else:
                self.char_buffer = [ord(char) for char in data]
        return self.char_buffer.pop(0)

    def write_char(self, code):
        self.pending.append(chr(code))

    def flush(self):
        if self.pending:
            self.kernel.Print("".join(self.pending), end="")
            self.pending = []
