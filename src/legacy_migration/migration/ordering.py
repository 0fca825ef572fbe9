"""Fractional ordering keys.

Keys are base-62 strings that sort by plain ordinal string comparison. A key
can always be generated strictly between two existing keys, so siblings are
never renumbered when one is inserted. Keys consist of an integer part, whose
length is encoded by its first character ('a'..'z' for positive lengths,
'A'..'Z' for negative), followed by an optional fractional part that never
ends in the zero digit.
"""

from collections.abc import Iterable

BASE_62_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

_SMALLEST_INTEGER = "A" + BASE_62_DIGITS[0] * 26


def _midpoint(a: str, b: str | None, digits: str) -> str:
    """Return a fractional part strictly between a and b (b=None means unbounded)."""
    zero = digits[0]
    if b is not None and a >= b:
        raise ValueError(f"{a!r} >= {b!r}")
    if a[-1:] == zero or (b and b[-1:] == zero):
        raise ValueError("trailing zero")

    if b:
        # Skip the common prefix
        n = 0
        while (a[n] if n < len(a) else zero) == b[n]:
            n += 1
        if n > 0:
            return b[:n] + _midpoint(a[n:], b[n:], digits)

    digit_a = digits.index(a[0]) if a else 0
    digit_b = digits.index(b[0]) if b is not None else len(digits)
    if digit_b - digit_a > 1:
        return digits[(digit_a + digit_b + 1) // 2]

    if b and len(b) > 1:
        return b[:1]
    return digits[digit_a] + _midpoint(a[1:], None, digits)


def _integer_length(head: str) -> int:
    if "a" <= head <= "z":
        return ord(head) - ord("a") + 2
    if "A" <= head <= "Z":
        return ord("Z") - ord(head) + 2
    raise ValueError(f"invalid order key head: {head!r}")


def _validate_integer(integer: str) -> None:
    if len(integer) != _integer_length(integer[0]):
        raise ValueError(f"invalid integer part of order key: {integer!r}")


def _integer_part(key: str) -> str:
    length = _integer_length(key[0])
    if length > len(key):
        raise ValueError(f"invalid order key: {key!r}")
    return key[:length]


def validate_order_key(key: str, digits: str = BASE_62_DIGITS) -> None:
    """Raise ValueError unless key is a well-formed order key."""
    if not key:
        raise ValueError("order key cannot be empty")
    if key == _SMALLEST_INTEGER:
        raise ValueError(f"invalid order key: {key!r}")
    integer = _integer_part(key)
    if key[len(integer) :][-1:] == digits[0]:
        raise ValueError(f"invalid order key: {key!r}")


def _increment_integer(integer: str, digits: str) -> str | None:
    _validate_integer(integer)
    head, body = integer[0], list(integer[1:])
    carry = True
    for i in reversed(range(len(body))):
        d = digits.index(body[i]) + 1
        if d == len(digits):
            body[i] = digits[0]
        else:
            body[i] = digits[d]
            carry = False
            break
    if carry:
        if head == "Z":
            return "a" + digits[0]
        if head == "z":
            return None
        new_head = chr(ord(head) + 1)
        if new_head > "a":
            body.append(digits[0])
        else:
            body.pop()
        return new_head + "".join(body)
    return head + "".join(body)


def _decrement_integer(integer: str, digits: str) -> str | None:
    _validate_integer(integer)
    head, body = integer[0], list(integer[1:])
    borrow = True
    for i in reversed(range(len(body))):
        d = digits.index(body[i]) - 1
        if d == -1:
            body[i] = digits[-1]
        else:
            body[i] = digits[d]
            borrow = False
            break
    if borrow:
        if head == "a":
            return "Z" + digits[-1]
        if head == "A":
            return None
        new_head = chr(ord(head) - 1)
        if new_head < "Z":
            body.append(digits[-1])
        else:
            body.pop()
        return new_head + "".join(body)
    return head + "".join(body)


def generate_key_between(a: str | None, b: str | None, digits: str = BASE_62_DIGITS) -> str:
    """Generate an order key strictly between a and b.

    Either bound may be None, meaning "before everything" / "after everything".

    Args:
        a: Lower bound key (exclusive) or None
        b: Upper bound key (exclusive) or None
        digits: Digit alphabet, in ascending order

    Returns:
        A new key k with a < k < b

    Raises:
        ValueError: If a bound is malformed or a >= b
    """
    if a is not None:
        validate_order_key(a, digits)
    if b is not None:
        validate_order_key(b, digits)
    if a is not None and b is not None and a >= b:
        raise ValueError(f"{a!r} >= {b!r}")

    if a is None:
        if b is None:
            return "a" + digits[0]
        ib = _integer_part(b)
        fb = b[len(ib) :]
        if ib == _SMALLEST_INTEGER:
            return ib + _midpoint("", fb, digits)
        if ib < b:
            return ib
        result = _decrement_integer(ib, digits)
        if result is None:
            raise ValueError("cannot decrement any more")
        return result

    if b is None:
        ia = _integer_part(a)
        fa = a[len(ia) :]
        incremented = _increment_integer(ia, digits)
        return ia + _midpoint(fa, None, digits) if incremented is None else incremented

    ia = _integer_part(a)
    fa = a[len(ia) :]
    ib = _integer_part(b)
    fb = b[len(ib) :]
    if ia == ib:
        return ia + _midpoint(fa, fb, digits)
    incremented = _increment_integer(ia, digits)
    if incremented is None:
        raise ValueError("cannot increment any more")
    if incremented < b:
        return incremented
    return ia + _midpoint(fa, None, digits)


def generate_keys(count: int, after: str | None = None) -> list[str]:
    """Generate count ascending keys, each after the previous (starting after `after`)."""
    keys: list[str] = []
    last = after
    for _ in range(count):
        last = generate_key_between(last, None)
        keys.append(last)
    return keys


def last_order_key(keys: Iterable[str | None]) -> str | None:
    """Return the greatest key by ordinal comparison, or None when keys is empty.

    SQL MAX() follows the column collation, which need not be ordinal; under
    a linguistic collation "aZ" sorts after "aa".
    """
    present = [key for key in keys if key is not None]
    return max(present) if present else None
