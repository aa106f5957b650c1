"""smart-ast: resilient, cached project analysis pipeline."""

__version__ = "0.1.0"
