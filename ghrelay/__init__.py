"""GitHub relay gateway: mirrors GitHub resources through a rotating pool of relay domains."""

__version__ = "1.0.0"
