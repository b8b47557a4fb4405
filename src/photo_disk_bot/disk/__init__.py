"""Cloud disk REST client and folder listing."""
