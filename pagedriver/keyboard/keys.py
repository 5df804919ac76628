from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union


class Modifier:
    """Script-facing modifier bits (page.event.modifiers)."""

    SHIFT = 0x02000000
    CTRL = 0x04000000
    ALT = 0x08000000
    META = 0x10000000
    KEYPAD = 0x20000000


# Input.dispatch*Event modifier bits
CDP_ALT = 1
CDP_CTRL = 2
CDP_META = 4
CDP_SHIFT = 8


def to_cdp_modifiers(modifier: int) -> int:
    """Translate page.event.modifiers bits into engine modifier bits."""
    if not modifier:
        return 0
    m = 0
    if modifier & Modifier.SHIFT:
        m |= CDP_SHIFT
    if modifier & Modifier.ALT:
        m |= CDP_ALT
    if modifier & Modifier.CTRL:
        m |= CDP_CTRL
    if modifier & Modifier.META:
        m |= CDP_META
    return m


@dataclass(frozen=True)
class KeySpec:
    """Everything needed to emit one key: DOM key/code, key code, produced text."""

    key: str
    code: str
    key_code: int
    text: Optional[str] = None
    modifier: int = 0  # implied script-facing modifier (e.g. SHIFT for "A")


# name -> (script code, DOM key, DOM code, windows key code, text)
_SPECIAL_KEYS: Tuple[Tuple[str, int, str, str, int, Optional[str]], ...] = (
    ("Escape", 0x01000000, "Escape", "Escape", 27, None),
    ("Tab", 0x01000001, "Tab", "Tab", 9, "\t"),
    ("Backtab", 0x01000002, "Tab", "Tab", 9, None),
    ("Backspace", 0x01000003, "Backspace", "Backspace", 8, None),
    ("Return", 0x01000004, "Enter", "Enter", 13, "\r"),
    ("Enter", 0x01000005, "Enter", "NumpadEnter", 13, "\r"),
    ("Insert", 0x01000006, "Insert", "Insert", 45, None),
    ("Delete", 0x01000007, "Delete", "Delete", 46, None),
    ("Pause", 0x01000008, "Pause", "Pause", 19, None),
    ("Print", 0x01000009, "PrintScreen", "PrintScreen", 44, None),
    ("Home", 0x01000010, "Home", "Home", 36, None),
    ("End", 0x01000011, "End", "End", 35, None),
    ("Left", 0x01000012, "ArrowLeft", "ArrowLeft", 37, None),
    ("Up", 0x01000013, "ArrowUp", "ArrowUp", 38, None),
    ("Right", 0x01000014, "ArrowRight", "ArrowRight", 39, None),
    ("Down", 0x01000015, "ArrowDown", "ArrowDown", 40, None),
    ("PageUp", 0x01000016, "PageUp", "PageUp", 33, None),
    ("PageDown", 0x01000017, "PageDown", "PageDown", 34, None),
    ("Shift", 0x01000020, "Shift", "ShiftLeft", 16, None),
    ("Control", 0x01000021, "Control", "ControlLeft", 17, None),
    ("Meta", 0x01000022, "Meta", "MetaLeft", 91, None),
    ("Alt", 0x01000023, "Alt", "AltLeft", 18, None),
    ("CapsLock", 0x01000024, "CapsLock", "CapsLock", 20, None),
    ("NumLock", 0x01000025, "NumLock", "NumLock", 144, None),
    ("ScrollLock", 0x01000026, "ScrollLock", "ScrollLock", 145, None),
) + tuple(
    (f"F{n}", 0x01000030 + n - 1, f"F{n}", f"F{n}", 111 + n, None)
    for n in range(1, 13)
)

_BY_CODE: Dict[int, KeySpec] = {
    code: KeySpec(key, dom_code, vk, text)
    for _, code, key, dom_code, vk, text in _SPECIAL_KEYS
}

# US layout punctuation: char -> (DOM code, windows key code, shifted)
_PUNCT: Dict[str, Tuple[str, int, bool]] = {
    " ": ("Space", 32, False),
    ";": ("Semicolon", 186, False),
    ":": ("Semicolon", 186, True),
    "=": ("Equal", 187, False),
    "+": ("Equal", 187, True),
    ",": ("Comma", 188, False),
    "<": ("Comma", 188, True),
    "-": ("Minus", 189, False),
    "_": ("Minus", 189, True),
    ".": ("Period", 190, False),
    ">": ("Period", 190, True),
    "/": ("Slash", 191, False),
    "?": ("Slash", 191, True),
    "`": ("Backquote", 192, False),
    "~": ("Backquote", 192, True),
    "[": ("BracketLeft", 219, False),
    "{": ("BracketLeft", 219, True),
    "\\": ("Backslash", 220, False),
    "|": ("Backslash", 220, True),
    "]": ("BracketRight", 221, False),
    "}": ("BracketRight", 221, True),
    "'": ("Quote", 222, False),
    '"': ("Quote", 222, True),
}

_SHIFTED_DIGITS = dict(zip(")!@#$%^&*(", "0123456789"))

# page.event.key: name -> script key code
KEY_CODES: Dict[str, int] = {name: code for name, code, *_ in _SPECIAL_KEYS}
KEY_CODES["Space"] = 0x20
KEY_CODES.update({chr(c): c for c in range(ord("A"), ord("Z") + 1)})
KEY_CODES.update({str(d): 0x30 + d for d in range(10)})


def spec_for_char(ch: str) -> KeySpec:
    """Key for typing one character; uppercase letters and shifted symbols imply SHIFT."""
    if ch in ("\n", "\r"):
        return _BY_CODE[KEY_CODES["Return"]]
    if ch == "\t":
        return _BY_CODE[KEY_CODES["Tab"]]
    if ch.isascii() and ch.isalpha():
        upper = ch.upper()
        return KeySpec(
            ch, f"Key{upper}", ord(upper), ch, Modifier.SHIFT if ch.isupper() else 0
        )
    if ch.isascii() and ch.isdigit():
        return KeySpec(ch, f"Digit{ch}", ord(ch), ch)
    if ch in _SHIFTED_DIGITS:
        digit = _SHIFTED_DIGITS[ch]
        return KeySpec(ch, f"Digit{digit}", ord(digit), ch, Modifier.SHIFT)
    if ch in _PUNCT:
        code, vk, shifted = _PUNCT[ch]
        return KeySpec(ch, code, vk, ch, Modifier.SHIFT if shifted else 0)
    # anything else (accents, CJK...) has no physical key: text only
    return KeySpec(ch, "", 0, ch)


def spec_for_code(code: int) -> KeySpec:
    """Key for a page.event.key code (or any unicode code point)."""
    spec = _BY_CODE.get(code)
    if spec is not None:
        return spec
    if code == 0x20:
        return spec_for_char(" ")
    if ord("A") <= code <= ord("Z"):
        # key codes name keys, not characters: no implied shift
        return KeySpec(chr(code).lower(), f"Key{chr(code)}", code, chr(code).lower())
    return spec_for_char(chr(code))


def resolve_key(value: Union[int, str]) -> Optional[KeySpec]:
    """Key for an int code or the first character of a string; None for ''."""
    if isinstance(value, int):
        return spec_for_code(value)
    if not value:
        return None
    return spec_for_char(value[0])
