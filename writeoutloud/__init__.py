"""WriteOutLoud scoring core.

Fuses pen-path geometry and speech transcription per stroke into shape,
naming and timing scores, and aggregates them into a character score.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
