"""whisper-provision: fetch, build and publish the whisper.cpp executable."""

__version__ = "1.0.0"
