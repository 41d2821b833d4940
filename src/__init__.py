"""pdfdigest: stage PDFs in a Feishu chat and reply with a summary document."""

from pdfdigest.version import __version__

__all__ = ["__version__"]
