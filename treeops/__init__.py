"""Bulk filesystem operations: enumerate, copy, remove and hash directory trees."""

from .copy import CopySummary, copy_tree
from .entry import CompletionTracker, Entry, EntryKind, EntryMetadata, EntryState
from .enumerator import TreeEnumerator, classify, enumerate_tree, list_paths
from .hashing import hash_file, hash_string, hash_tree, hash_url, probe_fd_limit
from .reader import read_file, read_files
from .remove import RemoveSummary, remove_tree

__all__ = [
    "CompletionTracker",
    "CopySummary",
    "Entry",
    "EntryKind",
    "EntryMetadata",
    "EntryState",
    "RemoveSummary",
    "TreeEnumerator",
    "classify",
    "copy_tree",
    "enumerate_tree",
    "hash_file",
    "hash_string",
    "hash_tree",
    "hash_url",
    "list_paths",
    "probe_fd_limit",
    "read_file",
    "read_files",
    "remove_tree",
]
