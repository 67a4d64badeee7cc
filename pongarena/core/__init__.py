"""Core package for shared types and constants."""
