"""HTTP surface of the verification engine."""
