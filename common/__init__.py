"""Shared infrastructure (logging, config, errors) for treeops."""
