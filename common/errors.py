class OverlayError(Exception):
    """Base class for every error raised by the overlay."""
    pass


class KeyLoadError(OverlayError):
    """Raised when key files exist but cannot be read, parsed or unlocked."""
    pass


class KeyPersistError(OverlayError):
    """Raised when a freshly generated key pair cannot be written to disk."""
    pass


class EncryptError(OverlayError):
    """Raised when a plaintext cannot be encrypted for a peer's public key."""
    pass


class DecryptError(OverlayError):
    """Raised when an inbound ciphertext cannot be decoded or decrypted."""
    pass


class BusError(OverlayError):
    """Raised when the pub/sub broker refuses us or the connection fails."""
    pass
