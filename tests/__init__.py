"""Test package for the media analysis service."""
