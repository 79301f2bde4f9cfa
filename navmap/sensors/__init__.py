"""Heading and Bluetooth beacon signal processing."""
