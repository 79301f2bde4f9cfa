"""navmap - viewport, heading and beacon-ranging core for floor-plan navigation tools."""

__version__ = "0.1.0"
