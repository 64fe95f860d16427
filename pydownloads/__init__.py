"""PyDownloads - file download portal with a chunked base64 content codec."""

__version__ = '1.0.0'
