"""Gesture handling and the controllers that drive the viewport."""
