"""HTTP surface for the permission engine."""
