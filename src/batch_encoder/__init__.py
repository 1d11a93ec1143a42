"""Batch Encoder - transcode music directories and split CUE albums."""

__version__ = "0.1.0"
