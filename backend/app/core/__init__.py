"""Core utilities for the Amora backend."""
