"""HTTP surface for the companion memory backend."""
