"""Studio pipeline for TinyTales.

Turns a story into an illustrated, narrated slideshow:
- illustration fetching with rate-limit backoff and cancellation
- narration synchronized to each frame
- frame compositing, recording and PDF/GIF/video export
"""

__version__ = "1.0.0"
