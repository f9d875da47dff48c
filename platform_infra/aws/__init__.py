"""AWS declarations and client helpers."""
