"""Death certificate text search for drug overdose surveillance"""

__version__ = "0.1.0"
