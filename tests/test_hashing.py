from io import BytesIO

from inflation_scanner.hashing import average_hash, hash_screenshot, stable_int_hash
from PIL import Image


def _png_bytes(width: int = 10, height: int = 10, color=(255, 0, 0)) -> bytes:
    img = Image.new("RGB", (width, height), color)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def test_hash_screenshot_reports_dimensions_and_hashes():
    normalized, sha, phash, width, height = hash_screenshot(_png_bytes(40, 20))
    assert len(normalized) > 0
    assert len(sha) == 64
    assert len(phash) == 16
    assert (width, height) == (40, 20)


def test_hash_screenshot_is_deterministic():
    first = hash_screenshot(_png_bytes())
    second = hash_screenshot(_png_bytes())
    assert first[1] == second[1]
    assert first[2] == second[2]


def test_average_hash_of_flat_image_is_zero():
    img = Image.new("RGB", (16, 16), (120, 120, 120))
    assert average_hash(img) == "0" * 16


def test_stable_int_hash_is_deterministic():
    value = stable_int_hash("https://example.com/")
    assert value == stable_int_hash("https://example.com/")
    assert value != stable_int_hash("https://example.org/")
