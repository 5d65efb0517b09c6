from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()

MIN_PASSWORD_LENGTH = 8


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return password_hash.verify(raw_password, hashed_password)


def validate_new_password(raw_password: str) -> str:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if raw_password.strip() != raw_password:
        raise ValueError('Password cannot start or end with whitespace')
    return raw_password
