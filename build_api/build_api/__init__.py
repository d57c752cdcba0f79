"""HTTP endpoint that lets other scenariodb installations delegate builds here."""

__version__ = "0.1.0"
