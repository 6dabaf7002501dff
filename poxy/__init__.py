"""poxy - a package-manager front end with a sandboxed AUR build pipeline."""

__version__ = "0.4.0"
