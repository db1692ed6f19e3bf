import secrets
import time

BASE36_DIGITS = '0123456789abcdefghijklmnopqrstuvwxyz'


def to_base36(number: int) -> str:
    if number == 0:
        return '0'
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(BASE36_DIGITS[rem])
    return ''.join(reversed(out))


def timestamped_reference(prefix: str, random_bytes: int = 3) -> str:
    """
    Upper-case ``PREFIX-<base36 ms timestamp>-<random hex>`` reference,
    used for tracking numbers and transaction ids.
    """
    stamp = to_base36(int(time.time() * 1000))
    return f"{prefix}-{stamp}-{secrets.token_hex(random_bytes)}".upper()
