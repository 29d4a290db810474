"""app-packager.

A build utility that packages a Node.js app into a minimal, reproducible zip
for deployment: only the files the entry module needs, plus installed
production dependencies, a platform bootstrap module and the app definition.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
