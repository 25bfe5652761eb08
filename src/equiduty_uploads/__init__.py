"""EquiDuty upload agent - photo compression, signed-URL upload and offline retry."""

__version__ = "0.1.0"
