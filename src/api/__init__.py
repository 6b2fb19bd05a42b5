"""HTTP surface for the pairing engine."""
