"""Reusable patterns shared by the storefront vertical.

Each module is a self-contained pattern that can be adapted to another
domain: repository layers, compensating-action scopes, and domain
configuration.
"""
