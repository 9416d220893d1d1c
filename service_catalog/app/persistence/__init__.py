"""
Persistence package for the Catalog Service.

Provides the document repository the movie and director services read and
write through. The shipped implementation keeps documents in process.
"""
