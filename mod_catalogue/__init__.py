"""Mod Catalogue: crawls the Steam Workshop and keeps a searchable copy of its mods."""

__version__ = "0.1.0"
