"""BOUNCE — offline rendering and export for pattern-based DAW projects."""

__version__ = "0.1.0"
