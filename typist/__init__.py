"""Typist — per-application keyboard input source switcher for X11."""

__version__ = '1.0.0'
