"""MongoDB news archive migration into relational and vector stores."""

__version__ = "0.1.0"
