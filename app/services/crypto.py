import base64
import binascii

from nacl import encoding, exceptions, public

from app.core.exceptions import SecretEncryptionError


def encrypt_secret(public_key: str, secret_value: str) -> str:
    """
    Seal a secret value for GitHub.

    Args:
        public_key: Base64 encoded environment public key
        secret_value: Plain text value

    Returns:
        Base64 encoded sealed box, the format the secrets endpoint expects

    Raises:
        SecretEncryptionError: If the key cannot be decoded or used
    """
    try:
        key = public.PublicKey(public_key.encode("utf-8"), encoding.Base64Encoder())
        sealed_box = public.SealedBox(key)
        encrypted = sealed_box.encrypt(secret_value.encode("utf-8"))
    except (AttributeError, binascii.Error, TypeError, ValueError, exceptions.CryptoError) as e:
        raise SecretEncryptionError(f"Invalid public key: {e}") from e
    return base64.b64encode(encrypted).decode("utf-8")
