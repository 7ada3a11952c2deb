from passlib.hash import pbkdf2_sha256


def hash_password(plain: str) -> str:
    # salted pbkdf2; no 72-byte limit unlike bcrypt
    return pbkdf2_sha256.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    return pbkdf2_sha256.verify(plain, hashed)
