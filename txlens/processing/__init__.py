"""Post-processing utilities for on-chain facts."""
