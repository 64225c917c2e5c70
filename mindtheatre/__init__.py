"""Mind Theatre: several agent voices, one synthesized reply."""

__version__ = "0.1.0"
