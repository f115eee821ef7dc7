"""Core evaluation engine: persistence, providers, selection pipeline and services."""
