"""
Catalog caching package.

Read-through caching of paginated collection reads with invalidate-on-write.
Keys are derived from the entity type plus pagination and sort parameters;
any successful write to an entity type drops that namespace and every
namespace related to it, and records an update marker so entries computed
before the write are treated as stale.
"""
