import secrets


def generate_reference(prefix: str = "TWP_TF") -> str:
    """Payment reference: prefix followed by 11 random digits"""
    return f"{prefix}{10_000_000_000 + secrets.randbelow(90_000_000_000)}"


def generate_withdrawal_reference() -> str:
    return f"TWP_WD-{secrets.token_hex(6).upper()}"
