"""memochat - memory-augmented chat turn assembly."""

__version__ = "0.1.0"
__logo__ = "🧠"
