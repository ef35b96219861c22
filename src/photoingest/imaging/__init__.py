"""Decoding, orientation, geometry and encoding of uploaded rasters."""
