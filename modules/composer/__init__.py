"""
Composer module.

Turns a narration track, an ordered set of still images and optional timed
captions into a single MP4 slideshow, cleaning up all working files.
"""

from modules.composer.config import ComposerConfig
from modules.composer.process import SlideshowComposer, process

__all__ = ["ComposerConfig", "SlideshowComposer", "process"]
