"""HTTP API package for the media analysis service."""
