"""School academic calendar service: sessions, terms and enrollment migration."""

__version__ = "1.0.0"
