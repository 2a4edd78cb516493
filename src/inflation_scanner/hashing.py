"""Evidence screenshot hashing."""

from __future__ import annotations

import hashlib
from io import BytesIO

from PIL import Image


def stable_int_hash(s: str) -> int:
    """Return a small deterministic hash used to name per-URL artifacts."""

    return int(hashlib.sha1(s.encode("utf-8")).hexdigest()[:8], 16)


def average_hash(im: Image.Image) -> str:
    small = im.convert("L").resize((8, 8), resample=Image.Resampling.LANCZOS)
    pixels = list(small.getdata())
    avg = sum(pixels) / len(pixels)
    bits = "".join("1" if p > avg else "0" for p in pixels)
    return f"{int(bits, 2):016x}"


def hash_screenshot(png_bytes: bytes) -> tuple[bytes, str, str, int, int]:
    """Re-encode a screenshot deterministically; return (png, sha256, phash, width, height)."""

    with Image.open(BytesIO(png_bytes)) as im:
        im = im.convert("RGB")
        width, height = im.size

        out = BytesIO()
        im.save(out, format="PNG", optimize=True)
        norm_png = out.getvalue()

        sha = hashlib.sha256(norm_png).hexdigest()
        return norm_png, sha, average_hash(im), width, height


__all__ = ["average_hash", "hash_screenshot", "stable_int_hash"]
