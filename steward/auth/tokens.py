import hashlib
import hmac
import secrets
import time


def _sign(data: str, secret_key: str, encoding: str) -> str:
    return hmac.new(
        key=secret_key.encode(encoding),
        msg=data.encode(encoding),
        digestmod=hashlib.sha256
    ).hexdigest()


def generate_transfer_token(transfer_id: str, secret_key: str, encoding: str = 'utf-8') -> str:
    """Create a token naming an ownership transfer, signed with HMAC-SHA256.

    A random nonce keeps tokens unguessable even when transfer ids are known.
    """
    timestamp = str(int(time.time()))
    nonce = secrets.token_hex(8)
    data = f"{transfer_id}:{timestamp}:{nonce}"
    return f"{data}:{_sign(data, secret_key, encoding)}"


def validate_transfer_token(token: str, secret_key: str, expiration: int = None, encoding: str = 'utf-8'):
    """Returns the transfer id a token names, or False when it is malformed, forged or too old."""
    try:
        transfer_id, timestamp, nonce, signature = token.split(':')
        issued_at = int(timestamp)
    except (AttributeError, ValueError):
        return False
    if expiration is not None and issued_at + expiration < int(time.time()):
        return False
    expected_signature = _sign(f"{transfer_id}:{timestamp}:{nonce}", secret_key, encoding)
    if hmac.compare_digest(signature, expected_signature):
        return transfer_id
    return False
