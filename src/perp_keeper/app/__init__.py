"""Application entry points and supervision."""
