"""Tests for cipher programs."""

import pytest
from pydantic import ValidationError

from yinfo.core.cipher import CipherOperation, CipherOpKind, CipherProgram, player_version_from_url
from yinfo.errors import VersionMismatchError


def _program(*ops, version="abc123de"):
    return CipherProgram(player_version=version, operations=ops)


class TestCipherOperation:
    def test_reverse(self):
        chars = list("abcd")
        CipherOperation.reverse().apply_to(chars)
        assert chars == list("dcba")

    def test_splice(self):
        chars = list("abcdef")
        CipherOperation.splice(0, 2).apply_to(chars)
        assert chars == list("cdef")

    def test_splice_past_end(self):
        chars = list("abc")
        CipherOperation.splice(1, 10).apply_to(chars)
        assert chars == ["a"]

    def test_swap_wraps_modulo_length(self):
        chars = list("abcd")
        CipherOperation.swap(0, 5).apply_to(chars)
        assert chars == list("bacd")

    def test_swap_on_empty(self):
        chars = []
        CipherOperation.swap(0, 3).apply_to(chars)
        assert chars == []

    def test_str(self):
        assert str(CipherOperation.reverse()) == "REVERSE"
        assert str(CipherOperation.swap(0, 4)) == "SWAP(0, 4)"
        assert str(CipherOperation.splice(0, 2)) == "SPLICE(0, 2)"

    def test_kind(self):
        assert CipherOperation.splice(0, 2).kind == CipherOpKind.SPLICE


class TestCipherProgram:
    def test_swap_then_splice(self):
        program = _program(CipherOperation.swap(0, 4), CipherOperation.splice(2, 1))
        assert program.apply("AbCdEfGh", "abc123de") == "EbdAfGh"

    def test_full_sequence(self):
        program = _program(
            CipherOperation.splice(0, 3),
            CipherOperation.reverse(),
            CipherOperation.swap(0, 2),
            CipherOperation.splice(0, 1),
        )
        assert program.apply("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abc123de") == "YZWVUTSRQPONMLKJIHGFED"

    def test_empty_program_is_identity(self):
        assert _program().apply("xyz", "abc123de") == "xyz"
        assert _program().describe() == "identity"

    def test_apply_is_pure(self):
        program = _program(CipherOperation.reverse(), CipherOperation.splice(0, 1))
        first = program.apply("signature", "abc123de")
        second = program.apply("signature", "abc123de")
        assert first == second == "rutangis"
        assert len(program.operations) == 2

    def test_version_mismatch(self):
        program = _program(CipherOperation.reverse())
        with pytest.raises(VersionMismatchError) as exc_info:
            program.apply("abc", "ffffffff")
        assert exc_info.value.expected == "abc123de"
        assert exc_info.value.actual == "ffffffff"

    def test_missing_version_mismatches(self):
        with pytest.raises(VersionMismatchError):
            _program().apply("abc", None)

    def test_frozen(self):
        program = _program()
        with pytest.raises(ValidationError):
            program.player_version = "other"

    def test_describe(self):
        program = _program(CipherOperation.reverse(), CipherOperation.swap(0, 3))
        assert program.describe() == "REVERSE -> SWAP(0, 3)"


class TestPlayerVersionFromUrl:
    def test_standard_url(self):
        url = "https://www.youtube.com/s/player/3bb1f723/player_ias.vflset/en_US/base.js"
        assert player_version_from_url(url) == "3bb1f723"

    def test_relative_url(self):
        assert player_version_from_url("/s/player/abc-1_2/tv-player-ias.vflset/tv-player-ias.js") == "abc-1_2"

    def test_fallback_to_path(self):
        assert player_version_from_url("https://example.com/player.js") == "/player.js"
