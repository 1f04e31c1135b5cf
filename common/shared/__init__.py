"""Configuration loading and progress helpers shared across treeops."""
