"""Kida template integration."""
