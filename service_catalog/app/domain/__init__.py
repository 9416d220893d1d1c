"""
Domain package for the Catalog Service: request models and the movie and
director services.
"""
