"""
Password Hashing Module

Salted scrypt hashing. The encoded hash carries its own parameters and salt
so cost settings can be raised later without breaking stored hashes.
"""

import hashlib
import hmac
import secrets


class PasswordHasher:
    """One-way salted password hashing and verification"""

    algorithm = "scrypt"

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1, salt_bytes: int = 16):
        self.n = n
        self.r = r
        self.p = p
        self.salt_bytes = salt_bytes

    def _generate_salt(self) -> str:
        """Generate random salt for password hashing"""
        return secrets.token_hex(self.salt_bytes)

    @staticmethod
    def _derive(password: str, salt: str, n: int, r: int, p: int) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=n, r=r, p=p
        ).hex()

    def hash(self, password: str) -> str:
        """Hash a password as ``scrypt$n$r$p$salt$digest``"""
        if not password:
            raise ValueError("Password cannot be empty")
        salt = self._generate_salt()
        digest = self._derive(password, salt, self.n, self.r, self.p)
        return f"{self.algorithm}${self.n}${self.r}${self.p}${salt}${digest}"

    def verify(self, password: str, encoded: str) -> bool:
        """Check a password against an encoded hash in constant time"""
        if not password or not encoded:
            return False
        try:
            algorithm, n, r, p, salt, digest = encoded.split("$")
            if algorithm != self.algorithm:
                return False
            expected = self._derive(password, salt, int(n), int(r), int(p))
        except ValueError:
            return False
        return hmac.compare_digest(expected, digest)
