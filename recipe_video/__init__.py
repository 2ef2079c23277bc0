# recipe_video/__init__.py
"""Cooking video ingestion: media normalization, AI analysis and recipe synthesis."""

__version__ = "0.3.0"
