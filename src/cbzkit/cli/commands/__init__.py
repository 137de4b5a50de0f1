"""CLI commands for cbzkit."""
