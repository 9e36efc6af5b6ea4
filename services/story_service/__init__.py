"""Story service for TinyTales.

Exposes the three AI capabilities the studio consumes:
- story writing from a short idea
- one illustration per sentence
- narration audio per sentence
"""

__version__ = "1.0.0"
