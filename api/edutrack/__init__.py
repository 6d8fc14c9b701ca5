"""edutrack API - student progress tracking and hierarchical rollup."""
