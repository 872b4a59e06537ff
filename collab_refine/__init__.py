"""Collaborative multi-model prompt refinement."""

__version__ = "0.1.0"
