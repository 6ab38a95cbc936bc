"""Routing: nested route entries matched depth-first, parent before child.

Route trees are defined at startup and never mutated afterwards.
"""
