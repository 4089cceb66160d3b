"""Supply control: rate-limited mint and burn authorization for supply controllers."""

__version__ = "0.1.0"
