"""
Decoders for the two script obfuscations seen on provider embed pages.

1. Dean Edwards' packer:
     eval(function(p,a,c,k,e,d){...}('payload',radix,count,'sym|tab'.split('|')))
   Words in the payload are base-N indices into the symbol table.

2. The "hunter" obfuscator used by CDN Live player pages:
     eval(function(h,u,n,t,e,r){...}("ENCODED",u,"ALPHABET",offset,base,r))
   ENCODED is split on ALPHABET[base]; every chunk maps each character to its
   alphabet index, is read as a base-`base` number, and minus `offset` gives
   one character code.

Both return plain JS so the ordinary extraction patterns can run on it.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import unquote

_PACKED_RE = re.compile(
    r"eval\(function\(p,a,c,k,e,[dr]\)\{.*?\}\('(.*?)',(\d+),(\d+),'(.*?)'\.split\('\|'\)",
    re.DOTALL,
)

_HUNTER_RE = re.compile(
    r'eval\(function\(h,u,n,t,e,r\)\{.*?\}\(\s*"((?:[^"\\]|\\.)*)"\s*,\s*\d+\s*,\s*"([^"]+)"\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*\d+\s*\)\)',
    re.DOTALL,
)

_BASE62 = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


def unpack(text: str) -> Optional[str]:
    """Unpack packed JS. Returns None if no packed block is present."""
    match = _PACKED_RE.search(text)
    if not match:
        return None

    payload, radix_s, count_s, symtab_raw = match.groups()
    radix = int(radix_s)
    count = int(count_s)
    symtab = symtab_raw.split("|")
    while len(symtab) < count:
        symtab.append("")

    def _replacer(m: re.Match) -> str:
        word = m.group(0)
        try:
            idx = int(word, radix) if radix <= 36 else _decode_base62(word)
        except (ValueError, IndexError):
            return word
        return symtab[idx] if idx < len(symtab) and symtab[idx] else word

    return re.sub(r"\b\w+\b", _replacer, payload)


def _decode_base62(s: str) -> int:
    val = 0
    for ch in s:
        val = val * 62 + _BASE62.index(ch)
    return val


def decode_hunter(encoded: str, alphabet: str, offset: int, base: int) -> str:
    """Decode one hunter payload with its alphabet, offset and base."""
    delimiter = alphabet[base]
    chars = []
    for chunk in encoded.split(delimiter):
        if not chunk:
            continue
        digits = "".join(str(alphabet.index(ch)) for ch in chunk if ch in alphabet)
        if not digits:
            continue
        value = 0
        for digit in digits:
            value = value * base + int(digit)
        code = value - offset
        if 0 < code < 0x10000:
            chars.append(chr(code))

    result = "".join(chars)
    # decodeURIComponent(escape(r)): the payload is UTF-8 bytes stored as code points
    try:
        return result.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return unquote(result)


def unhunt(text: str) -> Optional[str]:
    """Find and decode the first hunter block. Returns None if there is none."""
    match = _HUNTER_RE.search(text)
    if not match:
        return None
    encoded, alphabet, offset, base = match.groups()
    base_n = int(base)
    if base_n >= len(alphabet):
        return None
    return decode_hunter(encoded, alphabet, int(offset), base_n)
