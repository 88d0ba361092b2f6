# Vault - Password Generator
#
# Samples characters uniformly from the enabled character classes
# using the OS CSPRNG.

import secrets
import string
from dataclasses import dataclass

SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


@dataclass
class PasswordOptions:
    length: int = 16
    exclude_chars: str = ""
    uppercase: bool = True
    lowercase: bool = True
    digits: bool = True
    symbols: bool = True

    def charset(self) -> str:
        chars = ""
        if self.uppercase:
            chars += string.ascii_uppercase
        if self.lowercase:
            chars += string.ascii_lowercase
        if self.digits:
            chars += string.digits
        if self.symbols:
            chars += SYMBOLS
        excluded = set(self.exclude_chars)
        return "".join(c for c in chars if c not in excluded)


def generate_password(options: PasswordOptions) -> str:
    """Generate a random password.

    Raises:
        ValueError: If ``length`` is not positive or no characters remain
            after applying the class flags and exclusions.
    """
    if options.length < 1:
        raise ValueError("password length must be at least 1")
    charset = options.charset()
    if not charset:
        raise ValueError("no characters available for password generation")
    return "".join(secrets.choice(charset) for _ in range(options.length))
