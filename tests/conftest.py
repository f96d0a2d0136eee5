import io
import struct

import pytest

from lc3vm.console import StringConsole
from lc3vm.lc3 import LC3


def image(origin, *words):
    return struct.pack(">%dH" % (len(words) + 1), origin, *words)


@pytest.fixture
def console():
    return StringConsole()


@pytest.fixture
def lc3(console):
    return LC3(console=console)


@pytest.fixture
def load(lc3):
    """Place words at x3000 (or origin=...) through the image loader."""
    def load(*words, origin=0x3000):
        return lc3.load_image(io.BytesIO(image(origin, *words)))
    return load
