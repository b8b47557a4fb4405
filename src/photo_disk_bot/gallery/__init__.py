"""Image index, content downloads and per-chat likes."""
