"""stagegate: check the staged content of a commit with external reformatters/analyzers."""

__version__ = "0.1.0"
