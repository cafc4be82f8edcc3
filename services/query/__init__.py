"""
Query Engine - Filter Compilation, Execution and Aggregation

Modules:
- fields: typed field keys per entity kind
- predicates: Predicate variants, CompositeFilter and PredicateCompiler
- store: SQLite translation of composite filters (filter/count/group/delete)
- executor: paged and unpaginated listings
- aggregator: time-bucketed dashboard series
"""
