"""Sticker Scout: stickered skin scanner for the SkinsMonkey trade inventory."""

__version__ = "1.0.0"
