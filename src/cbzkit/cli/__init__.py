"""Command-line interface for cbzkit."""
