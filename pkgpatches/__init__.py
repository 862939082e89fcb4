"""pkgpatches - apply and revert patches declared by installed packages."""

__version__ = "1.0.0"
