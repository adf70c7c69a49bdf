"""pawnmem CLI — Click-based inspection tools for saved memory snapshots."""
