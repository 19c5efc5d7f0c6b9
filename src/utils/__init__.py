"""Utilities package for the storefront catalog."""
