"""Small string helpers."""


def eqcase(s1: str, s2: str) -> bool:
    """Compare two strings for equality, ignoring case."""
    if len(s1) != len(s2):
        return False
    return all(a.lower() == b.lower() for a, b in zip(s1, s2))