"""userhub: user records over a key-value store with a unique email index."""

__version__ = "0.1.0"
