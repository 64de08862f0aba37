"""Dashboard configuration and the built-in module catalog."""
