"""Command-line entrypoints for bridgeswap."""
