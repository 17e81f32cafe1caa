"""Debug information buckets, cache configuration and debuginfod clients."""