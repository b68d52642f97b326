"""Pipeline core: timestamps, release-notes cache, stage graph, packaging, verification."""
