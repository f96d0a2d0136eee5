import io
import os

import pytest

from lc3vm.console import Console, KernelConsole, StringConsole, TerminalConsole
from lc3vm.lc3 import LC3, InputClosedError


class FakeKernel(object):
    def __init__(self, *lines):
        self.lines = list(lines)
        self.printed = []

    def raw_input(self, prompt=""):
        return self.lines.pop(0)

    def Print(self, *args, **kwargs):
        self.printed.append((args, kwargs))


def test_console_base_is_abstract():
    console = Console()
    with pytest.raises(NotImplementedError):
        console.input_available()
    console.disable_input_buffering()
    console.restore_input_buffering()
    console.flush()


def test_string_console():
    console = StringConsole("ab")
    assert console.input_available()
    assert console.read_one_char() == ord("a")
    console.write_char(ord("x"))
    assert console.read_one_char() == ord("b")
    assert not console.input_available()
    with pytest.raises(InputClosedError):
        console.read_one_char()
    assert console.getvalue() == "x"


def test_kernel_console_reads_a_line_at_a_time():
    kernel = FakeKernel("ab", "", "x\\n")
    console = KernelConsole(kernel)
    assert not console.input_available()
    assert console.read_one_char() == ord("a")
    assert console.input_available()
    assert console.read_one_char() == ord("b")
    assert console.read_one_char() == ord("\n")
    assert console.read_one_char() == ord("x")
    assert console.read_one_char() == ord("\n")


def test_kernel_console_cancelled_input():
    console = KernelConsole(FakeKernel(None))
    with pytest.raises(InputClosedError):
        console.read_one_char()


def test_kernel_console_output_sent_on_flush():
    kernel = FakeKernel()
    console = KernelConsole(kernel)
    console.write_char(ord("H"))
    console.write_char(ord("i"))
    assert kernel.printed == []
    console.flush()
    console.flush()
    assert kernel.printed == [(("Hi",), {"end": ""})]


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "rb")
    yield reader, write_fd
    reader.close()


def test_terminal_console_polls_and_reads(pipe):
    reader, write_fd = pipe
    stdout = io.BytesIO()
    console = TerminalConsole(stdin=reader, stdout=stdout)
    assert not console.input_available()
    os.write(write_fd, b"x")
    assert console.input_available()
    assert console.read_one_char() == ord("x")
    os.close(write_fd)
    with pytest.raises(InputClosedError):
        console.read_one_char()
    console.write_char(ord("A"))
    console.flush()
    assert stdout.getvalue() == b"A"


def test_terminal_console_leaves_pipes_alone(pipe):
    reader, write_fd = pipe
    console = TerminalConsole(stdin=reader, stdout=io.BytesIO())
    console.disable_input_buffering()
    assert console.saved_attributes is None
    console.restore_input_buffering()
    console.restore_input_buffering()
    os.close(write_fd)


def test_terminal_console_writes_single_bytes(pipe):
    reader, write_fd = pipe
    raw = io.BytesIO()
    stdout = io.TextIOWrapper(raw, encoding="utf-8")
    lc3 = LC3(console=TerminalConsole(stdin=reader, stdout=stdout))
    lc3.memory[0x3000] = 0xF021     # OUT
    lc3.set_register(0, 0x01E9)
    lc3.step()
    assert raw.getvalue() == b"\xe9"
    os.close(write_fd)
