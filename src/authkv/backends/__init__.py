"""Pluggable backend implementations."""
