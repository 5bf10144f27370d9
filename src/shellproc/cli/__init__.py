"""Command-line front-end for shellproc."""
