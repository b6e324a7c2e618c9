"""DavFinder - ranked search over a WebDAV file store."""

__version__ = "0.1.0"
