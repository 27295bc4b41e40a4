"""Backend package hosting the trove client core (``backend.core.trove_core``)."""

__all__ = ["core"]
