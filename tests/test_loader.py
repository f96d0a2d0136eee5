import io

import pytest

from lc3vm.lc3 import FL_ZRO, LoadError

from conftest import image


def test_words_placed_from_origin(lc3):
    assert lc3.load_image(io.BytesIO(image(0x3000, 0x1011, 0x2022))) == (0x3000, 2)
    assert lc3.memory[0x3000] == 0x1011
    assert lc3.memory[0x3001] == 0x2022


def test_stream_is_big_endian(lc3):
    lc3.load_image(io.BytesIO(b"\x30\x00\x10\x11\x20\x22"))
    assert lc3.memory[0x3000] == 0x1011
    assert lc3.memory[0x3001] == 0x2022


def test_registers_untouched(lc3):
    lc3.load_image(io.BytesIO(image(0x4000, 0xFFFF)))
    assert lc3.get_pc() == 0x3000
    assert lc3.register == [0] * 8
    assert lc3.cond == FL_ZRO


def test_origin_only(lc3):
    assert lc3.load_image(io.BytesIO(image(0x5000))) == (0x5000, 0)


@pytest.mark.parametrize("data", [b"", b"\x30"])
def test_empty_image(lc3, data):
    with pytest.raises(LoadError, match="empty"):
        lc3.load_image(io.BytesIO(data))


def test_truncated_image(lc3):
    with pytest.raises(LoadError, match="truncated"):
        lc3.load_image(io.BytesIO(b"\x30\x00\x10\x11\x20"))


def test_image_past_end_of_memory(lc3):
    with pytest.raises(LoadError, match="xFFFF"):
        lc3.load_image(io.BytesIO(image(0xFFFF, 1, 2)))
    assert lc3.memory[0xFFFF] == 0


def test_image_ending_at_last_word(lc3):
    lc3.load_image(io.BytesIO(image(0xFFFE, 1, 2)))
    assert lc3.memory[0xFFFE] == 1
    assert lc3.memory[0xFFFF] == 2


def test_later_images_overwrite(lc3):
    lc3.load_image(io.BytesIO(image(0x3000, 1, 2, 3)))
    lc3.load_image(io.BytesIO(image(0x3001, 9)))
    assert list(lc3.memory[0x3000:0x3003]) == [1, 9, 3]


def test_error_names_the_image(lc3):
    with pytest.raises(LoadError) as info:
        lc3.load_image(io.BytesIO(b""), "prog.obj")
    assert info.value.name == "prog.obj"
    assert "prog.obj" in str(info.value)


def test_load_image_file(lc3, tmp_path):
    path = tmp_path / "prog.obj"
    path.write_bytes(image(0x3000, 0xF025))
    assert lc3.load_image_file(str(path)) == (0x3000, 1)
    assert lc3.memory[0x3000] == 0xF025


def test_load_missing_file(lc3, tmp_path):
    path = str(tmp_path / "missing.obj")
    with pytest.raises(LoadError) as info:
        lc3.load_image_file(path)
    assert info.value.name == path
