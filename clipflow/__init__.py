"""Segmented video generation: split a prompt into clips and drive each through a clip provider."""

__version__ = "0.1.0"
