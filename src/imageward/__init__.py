"""imageward - declarative container image lifecycle management"""

__version__ = "0.1.0"
