"""Reusable, framework-free libraries."""
