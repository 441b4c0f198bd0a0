"""
segmux: parallel segment downloader, audio synchronizer and ffmpeg muxer.
"""

__version__ = "0.4.0"
