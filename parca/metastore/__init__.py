"""Content-addressed in-memory storage of mappings, functions, locations and stacktraces."""