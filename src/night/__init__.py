"""Dim every display and the keyboard backlight until a key is pressed."""

__version__ = "1.2.0"
