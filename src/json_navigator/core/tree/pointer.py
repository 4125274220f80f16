"""JSON Pointer helpers (RFC 6901 escaping, parent/child navigation)."""

ROOT = ""


def escape_token(raw: str) -> str:
    return raw.replace("~", "~0").replace("/", "~1")


def unescape_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def child_pointer(parent: str, key: str | int) -> str:
    return f"{parent}/{escape_token(str(key))}"


def split_pointer(pointer: str) -> list[str]:
    """Split a pointer into unescaped reference tokens.

    Raises:
        ValueError: if a non-empty pointer does not start with ``/``.
    """
    if pointer == ROOT:
        return []
    if not pointer.startswith("/"):
        msg = f"Invalid JSON pointer: {pointer!r}"
        raise ValueError(msg)
    return [unescape_token(t) for t in pointer[1:].split("/")]


def parent_pointer(pointer: str) -> str | None:
    """Return the parent pointer, or None for the root."""
    if pointer == ROOT:
        return None
    return pointer.rsplit("/", 1)[0]


def last_token(pointer: str) -> str | None:
    if pointer == ROOT:
        return None
    return unescape_token(pointer.rsplit("/", 1)[1])


def is_descendant_or_self(pointer: str, ancestor: str) -> bool:
    if ancestor == ROOT:
        return True
    return pointer == ancestor or pointer.startswith(ancestor + "/")


def depth(pointer: str) -> int:
    return 0 if pointer == ROOT else pointer.count("/")
