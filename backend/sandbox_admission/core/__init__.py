"""Core settings, logging, and error primitives."""
