"""Command-line entry points for treeops."""
