"""Identifier helpers shared by the definitions parser, the lock and codegen."""

from __future__ import annotations

# Short-string selectors must fit one field element (31 ASCII bytes).
MAX_SELECTOR_BYTES = 31


def snake(s: str) -> str:
    out = []
    prev_lower = False
    for ch in s:
        if ch.isalnum():
            if ch.isupper() and prev_lower:
                out.append("_")
            out.append(ch.lower())
            prev_lower = ch.islower() or ch.isdigit()
        else:
            out.append("_")
            prev_lower = False
    name = "".join(out).strip("_")
    while "__" in name:
        name = name.replace("__", "_")
    return name


def upper_camel(s: str) -> str:
    """``COLOR_DARK_RED`` / ``dark_red`` / ``darkRed`` → ``DarkRed``."""
    parts = [p for p in snake(s).split("_") if p]
    return "".join(p[:1].upper() + p[1:] for p in parts)


def strip_enum_prefix(enum_name: str, variant: str) -> str:
    """
    Drop the enum's own name from the front of a variant (``Color`` + ``ColorRed``
    → ``Red``), unless what remains is not a new word (``Foo`` vs ``Foobar``).
    """
    stripped = variant[len(enum_name):] if variant.startswith(enum_name) else variant
    if stripped[:1].isupper():
        return stripped
    return variant


def selector_for(method: str) -> str:
    return snake(method)


def path_for(method: str) -> str:
    return method.lower()


__all__ = [
    "MAX_SELECTOR_BYTES",
    "snake",
    "upper_camel",
    "strip_enum_prefix",
    "selector_for",
    "path_for",
]
