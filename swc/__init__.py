"""
swc - download → transcode media pipeline.

Drives two external tools (a downloader and a transcoder) as managed
subprocess stages, with bounded concurrency, retries for transient
failures, cancellation and scoped scratch workspaces.
"""

__version__ = "0.1.0"
