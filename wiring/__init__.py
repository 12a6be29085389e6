"""Convention-based scanning, planning and bundling."""
