"""Shared fixtures for the runner test suite."""

import io
import zipfile

import pytest


def build_zip(members: dict[str, bytes | str | None]) -> bytes:
    """Build an in-memory ZIP. A value of None creates a directory entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in members.items():
            if content is None:
                archive.writestr(zipfile.ZipInfo(name.rstrip("/") + "/"), b"")
            else:
                archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip():
    return build_zip


# 1x1 transparent PNG; not valid UTF-8.
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


def flag_encrypted(archive: bytes) -> bytes:
    """Set the 'encrypted' bit on every member of a stored archive.

    The member bytes stay plaintext; zipfile refuses them without a password.
    """
    patched = bytearray(archive)
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        start = patched.find(signature)
        while start != -1:
            patched[start + flag_offset] |= 0x01
            start = patched.find(signature, start + 4)
    return bytes(patched)


def break_deflate_stream(archive: bytes, member: str) -> bytes:
    """Overwrite the head of ``member``'s deflate stream with an invalid block."""
    patched = bytearray(archive)
    header = patched.find(b"PK\x03\x04")
    data_start = header + 30 + len(member.encode())
    patched[data_start:data_start + 4] = b"\xff\xff\xff\xff"
    return bytes(patched)


@pytest.fixture
def encrypted_zip() -> bytes:
    return flag_encrypted(build_zip({"index.html": "<html></html>"}))


@pytest.fixture
def broken_deflate_zip() -> bytes:
    html = "<html><body>" + "<p>prototype</p>" * 40 + "</body></html>"
    return break_deflate_stream(build_zip({"index.html": html}), "index.html")
