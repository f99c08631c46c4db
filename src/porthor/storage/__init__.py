"""Storage layers for the directory and the local record store."""
