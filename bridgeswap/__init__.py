"""Top-level package for the bridge-and-swap intent tooling."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``bridgeswap.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("bridgeswap")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
