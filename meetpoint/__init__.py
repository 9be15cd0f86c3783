"""Meeting point recommendations for groups of travelers."""

__version__ = '0.1.0'
